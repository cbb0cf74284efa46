from decimal import Decimal

import pytest

from billbuddy import app
from billbuddy.core.config_store import get_config_decimal, get_config_value, set_config_value


@pytest.fixture()
def services(database):
    app.reset_services()
    yield
    app.reset_services()


@pytest.fixture()
def tax_setting():
    original = get_config_value("default_tax_pct")
    yield
    set_config_value("default_tax_pct", original)


def test_bootstrap_is_a_singleton(services):
    first = app.bootstrap(backup=False)
    assert app.get_services() is first
    assert first.billing.ledger is first.ledger
    assert first.integrity_ok

    app.reset_services()
    assert app.bootstrap(backup=False) is not first


def test_bootstrap_reads_default_percentages(services, tax_setting, paneer):
    set_config_value("default_tax_pct", "12")
    ledger = app.bootstrap(backup=False).ledger
    ledger.add_item("T1", paneer)
    assert ledger.get_order("T1").tax_pct == Decimal("12")
    assert ledger.get_totals("T1").tax == Decimal("21.60")


def test_bad_percentage_falls_back_to_default(tax_setting):
    set_config_value("default_tax_pct", "five")
    assert get_config_decimal("default_tax_pct") == Decimal("5")
