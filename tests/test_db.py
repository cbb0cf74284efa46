import sqlite3

import pytest

from billbuddy.core import db
from billbuddy.core.config_store import get_config_value, set_config_value
from conftest import count_rows, fetch_all


def test_init_db_is_idempotent(database):
    db.init_db()
    db.init_db()
    assert count_rows("tables") == 3
    assert count_rows("items") == 3
    assert db.setting_get("schema_version") == db.SCHEMA_VERSION


def test_pragmas_are_applied(database):
    row = fetch_all("PRAGMA foreign_keys")[0]
    assert row[0] == 1
    assert fetch_all("PRAGMA journal_mode")[0][0] == "wal"


def test_foreign_keys_reject_orphan_bills(database):
    with pytest.raises(sqlite3.IntegrityError):
        with db.db_transaction() as conn:
            conn.execute(
                """INSERT INTO bills(id, order_id, subtotal, tax_pct, discount_pct, total, status, created_at)
                       VALUES('b-x', 'o-missing', 0, 0, 0, 0, 'paid', 0)"""
            )
    assert count_rows("bills") == 0


def test_status_is_constrained(database):
    with pytest.raises(sqlite3.IntegrityError):
        with db.db_transaction() as conn:
            conn.execute(
                "INSERT INTO orders(id, table_id, status, created_at) VALUES('o-x', 'T1', 'open', 0)"
            )


def test_old_item_tables_gain_columns(tmp_path):
    path = tmp_path / "mobile.db"
    legacy = sqlite3.connect(path)
    legacy.execute("CREATE TABLE items(id TEXT PRIMARY KEY, name TEXT NOT NULL, price REAL NOT NULL)")
    legacy.execute("INSERT INTO items VALUES('tea', 'Tea', 10)")
    legacy.commit()
    legacy.close()

    db.configure(path)
    try:
        db.init_db()
        cols = {row[1] for row in fetch_all("PRAGMA table_info(items)")}
        assert {"half_price", "category"} <= cols
        # an existing file is never reseeded
        assert [row["id"] for row in fetch_all("SELECT id FROM items")] == ["tea"]
    finally:
        db.close_engine()


def test_settings_round_trip(database):
    assert db.setting_get("printer", "none") == "none"
    db.setting_set("printer", "kitchen")
    db.setting_set("printer", "bar")
    assert db.setting_get("printer") == "bar"


def test_log_action_defaults_to_system(database):
    db.log_action(None, "manual_fix", "bill", "b-1", "due", "paid")
    (entry,) = list(db.iter_audit_log("manual_fix"))
    assert entry["username"] == "system"
    assert (entry["old_value"], entry["new_value"]) == ("due", "paid")


def test_synchronous_mode_setting(database):
    original = get_config_value("sqlite_synchronous")
    try:
        assert db.set_synchronous_mode("normal") == "NORMAL"
        assert db.get_synchronous_mode() == "NORMAL"
        assert db.set_synchronous_mode("bogus") == "FULL"
    finally:
        set_config_value("sqlite_synchronous", original)


def test_integrity_check(database):
    assert db.run_integrity_check() == "ok"
    ok, report = db.maybe_run_integrity_check(force=True)
    assert ok
    assert report == "ok"
    assert db.maybe_run_integrity_check() == (True, "")
