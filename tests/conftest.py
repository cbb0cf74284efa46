import os
import tempfile
from datetime import datetime
from decimal import Decimal

# keep config/backup/log files out of the real home directory
os.environ.setdefault("BILLBUDDY_DATA_ROOT", tempfile.mkdtemp(prefix="billbuddy-tests-"))

import pytest

from billbuddy.core import db
from billbuddy.services import billing
from billbuddy.services.billing import BillingEngine
from billbuddy.services.ledger import MenuItem, OrderLedger


@pytest.fixture()
def database(tmp_path):
    """A fresh, initialised database file per test."""
    path = db.configure(tmp_path / "billbuddy.db")
    db.init_db()
    yield path
    db.close_engine()


@pytest.fixture()
def ledger() -> OrderLedger:
    return OrderLedger()


@pytest.fixture()
def engine(database, ledger) -> BillingEngine:
    return BillingEngine(ledger)


@pytest.fixture()
def paneer() -> MenuItem:
    return MenuItem(id="paneer", name="Paneer", price=Decimal("180"))


@pytest.fixture()
def rice() -> MenuItem:
    return MenuItem(id="rice", name="Rice", price=Decimal("70"))


@pytest.fixture()
def t1_lines(ledger, paneer, rice):
    """Table T1 with Paneer x1 and Rice x2 (subtotal 320)."""
    ledger.add_item("T1", paneer)
    ledger.add_quantity("T1", rice, 2)
    return ledger.get_lines("T1")


@pytest.fixture()
def clock(monkeypatch):
    """Pin the timestamps the billing engine writes.

    Call ``clock.at(dt)`` before a finalize/settle to stamp rows at *dt*.
    """

    class _Clock:
        def __init__(self) -> None:
            self.current = int(datetime.now().timestamp() * 1000)

        def at(self, when: datetime) -> None:
            self.current = int(when.timestamp() * 1000)

        def __call__(self) -> int:
            return self.current

    fake = _Clock()
    monkeypatch.setattr(billing, "now_ms", fake)
    return fake


def count_rows(table: str) -> int:
    conn = db.get_conn()
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def fetch_all(sql: str, params: tuple = ()):
    conn = db.get_conn()
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> None:
    conn = db.get_conn()
    try:
        conn.execute(sql, params)
    finally:
        conn.close()
