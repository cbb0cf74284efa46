from decimal import Decimal

import pytest

from billbuddy.core.money import compute_totals, fmt_money, round_qty, to_money
from billbuddy.services.ledger import OrderLine


def _line(price, qty):
    return OrderLine(item_id="x", name="X", price=Decimal(str(price)), quantity=Decimal(str(qty)))


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(0.1) == Decimal("0.10")
    assert to_money(None) == Decimal("0.00")


def test_round_qty_keeps_two_places():
    assert round_qty(Decimal("0.5") + Decimal("0.5")) == Decimal("1.00")
    assert round_qty("1.005") == Decimal("1.01")


def test_scenario_totals():
    totals = compute_totals([_line(180, 1), _line(70, 2)], 5, 0)
    assert totals.subtotal == Decimal("320.00")
    assert totals.tax == Decimal("16.00")
    assert totals.discount == Decimal("0.00")
    assert totals.total == Decimal("336.00")


@pytest.mark.parametrize(
    "tax_pct, discount_pct",
    [(0, 0), (5, 0), (18, 10), (12.5, 3.75), (0, 100)],
)
def test_total_follows_the_percentage_formula(tax_pct, discount_pct):
    totals = compute_totals([_line("99.99", 3), _line(15, "0.5")], tax_pct, discount_pct)
    subtotal = Decimal("99.99") * 3 + Decimal("7.5")
    tax = subtotal * Decimal(str(tax_pct)) / 100
    discount = subtotal * Decimal(str(discount_pct)) / 100
    assert totals.total == to_money(max(Decimal("0"), subtotal + tax - discount))


def test_total_is_rounded_once():
    # 1.00 + 0.005 - 0.004 = 1.001; rounding tax and discount first would give 1.01
    totals = compute_totals([_line(1, 1)], "0.5", "0.4")
    assert totals.tax == Decimal("0.01")
    assert totals.discount == Decimal("0.00")
    assert totals.total == Decimal("1.00")


def test_total_never_negative():
    totals = compute_totals([_line(100, 1)], 5, 150)
    assert totals.discount == Decimal("150.00")
    assert totals.total == Decimal("0.00")


def test_empty_lines_total_zero():
    totals = compute_totals([], 5, 0)
    assert totals.as_dict() == {
        "subtotal": Decimal("0"),
        "tax": Decimal("0"),
        "discount": Decimal("0"),
        "total": Decimal("0"),
    }


def test_negative_percentages_are_not_rejected():
    totals = compute_totals([_line(100, 1)], -10, 0)
    assert totals.tax == Decimal("-10.00")
    assert totals.total == Decimal("90.00")


def test_fmt_money():
    assert fmt_money(1234.5) == "₹1,234.50"
    assert fmt_money(-3, currency="LE ") == "-LE 3.00"
