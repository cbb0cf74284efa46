"""SQLite storage for the catalog mirror, orders, bills and dues."""
from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from .config_store import get_config_value, set_config_value
from .paths import DB_PATH, ensure_storage_dirs

log = logging.getLogger(__name__)

_VALID_SYNC = {"OFF", "NORMAL", "FULL", "EXTRA"}
_DEFAULT_SYNC = "FULL"
# bumped when init_db gains a migration; 1 is the mobile app layout
SCHEMA_VERSION = "2"

_ENGINE: Optional[Engine] = None
_DB_PATH: Path = DB_PATH


def _current_sync() -> str:
    value = str(get_config_value("sqlite_synchronous", _DEFAULT_SYNC)).upper()
    if value not in _VALID_SYNC:
        value = _DEFAULT_SYNC
        set_config_value("sqlite_synchronous", value)
    return value


def _apply_pragmas(dbapi_conn, _):
    dbapi_conn.row_factory = sqlite3.Row
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute(f"PRAGMA synchronous={_current_sync()};")
        cursor.execute("PRAGMA temp_store=MEMORY;")
    finally:
        cursor.close()


def _build_engine(path: Path) -> Engine:
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite:///{path.as_posix()}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _apply_pragmas)
    return engine


def configure(db_path: Path | str | None = None) -> Path:
    """Point the store at *db_path* (defaults to the standard location)."""
    global _ENGINE, _DB_PATH
    close_engine()
    _DB_PATH = Path(db_path) if db_path is not None else DB_PATH
    _ENGINE = _build_engine(_DB_PATH)
    log.debug("database bound to %s", _DB_PATH)
    return _DB_PATH


def database_path() -> Path:
    return _DB_PATH


def _engine() -> Engine:
    global _ENGINE
    if _ENGINE is None:
        ensure_storage_dirs()
        _ENGINE = _build_engine(_DB_PATH)
    return _ENGINE


def get_conn():
    conn = _engine().raw_connection()
    # explicit transactions via BEGIN; everything else autocommits
    conn.driver_connection.isolation_level = None
    return conn


@contextmanager
def db_transaction(begin_stmt: str = "BEGIN IMMEDIATE"):
    conn = get_conn()
    try:
        conn.execute(begin_stmt)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def close_engine() -> None:
    global _ENGINE
    if _ENGINE is not None:
        _ENGINE.dispose()
        _ENGINE = None


def now_ms() -> int:
    """Timestamps are epoch milliseconds, matching the mobile app's rows."""
    return int(time.time() * 1000)


def get_synchronous_mode() -> str:
    return _current_sync()


def set_synchronous_mode(mode: str) -> str:
    desired = (mode or _DEFAULT_SYNC).upper()
    if desired not in _VALID_SYNC:
        desired = _DEFAULT_SYNC
    set_config_value("sqlite_synchronous", desired)
    conn = get_conn()
    try:
        conn.execute(f"PRAGMA synchronous={desired};")
    finally:
        conn.close()
    return desired


def init_db() -> None:
    first_time = not _DB_PATH.exists()
    conn = get_conn()
    try:
        cur = conn.cursor()
        cur.execute(
            """CREATE TABLE IF NOT EXISTS settings(
                    key TEXT PRIMARY KEY,
                    value TEXT
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS audit_log(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TEXT NOT NULL,
                    username TEXT NOT NULL,
                    action TEXT NOT NULL,
                    entity_type TEXT,
                    entity_name TEXT,
                    old_value TEXT,
                    new_value TEXT,
                    extra TEXT
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS tables(
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'empty'
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS items(
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    price REAL NOT NULL,
                    half_price REAL,
                    category TEXT
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS orders(
                    id TEXT PRIMARY KEY,
                    table_id TEXT NOT NULL,
                    waiter_id TEXT,
                    status TEXT NOT NULL CHECK(status in ('paid','due')),
                    created_at INTEGER NOT NULL
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS order_items(
                    id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    price REAL NOT NULL,
                    quantity REAL NOT NULL,
                    FOREIGN KEY(order_id) REFERENCES orders(id)
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS bills(
                    id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL,
                    subtotal REAL NOT NULL,
                    tax_pct REAL NOT NULL,
                    discount_pct REAL NOT NULL,
                    total REAL NOT NULL,
                    status TEXT NOT NULL CHECK(status in ('paid','due')),
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY(order_id) REFERENCES orders(id)
                )"""
        )
        cur.execute(
            """CREATE TABLE IF NOT EXISTS dues(
                    id TEXT PRIMARY KEY,
                    bill_id TEXT NOT NULL,
                    name TEXT,
                    phone TEXT,
                    photo_uri TEXT,
                    created_at INTEGER NOT NULL,
                    paid_at INTEGER,
                    FOREIGN KEY(bill_id) REFERENCES bills(id)
                )"""
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_bills_created ON bills(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_bills_order ON bills(order_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_dues_bill ON dues(bill_id)")

        _ensure_item_columns(cur)

        if first_time:
            _seed_defaults(cur)
            log.info("created database at %s", _DB_PATH)
    finally:
        conn.close()
    if setting_get("schema_version") != SCHEMA_VERSION:
        setting_set("schema_version", SCHEMA_VERSION)


def _ensure_item_columns(cur) -> None:
    # databases written by the mobile app only carry id/name/price/category
    cur.execute("PRAGMA table_info(items)")
    cols = {row[1] for row in cur.fetchall()}
    if "half_price" not in cols:
        cur.execute("ALTER TABLE items ADD COLUMN half_price REAL")
    if "category" not in cols:
        cur.execute("ALTER TABLE items ADD COLUMN category TEXT")


def _seed_defaults(cur) -> None:
    for table_id, name in (("1", "T1"), ("2", "T2"), ("3", "T3")):
        cur.execute(
            "INSERT OR IGNORE INTO tables(id, name) VALUES(?, ?)",
            (table_id, name),
        )
    for item_id, name, price in (
        ("chapati", "Chapati", 15),
        ("dal", "Dal", 60),
        ("paneer", "Paneer", 180),
    ):
        cur.execute(
            "INSERT OR IGNORE INTO items(id, name, price) VALUES(?, ?, ?)",
            (item_id, name, price),
        )


def log_action(username, action, entity_type=None, entity_name=None, old_value=None, new_value=None, extra=None):
    with db_transaction() as conn:
        conn.execute(
            """INSERT INTO audit_log(ts,username,action,entity_type,entity_name,old_value,new_value,extra)
                   VALUES(?,?,?,?,?,?,?,?)""",
            (
                datetime.now().isoformat(),
                username or "system",
                action,
                entity_type,
                entity_name,
                old_value,
                new_value,
                extra,
            ),
        )


def setting_get(key: str, default: str = "") -> str:
    conn = get_conn()
    try:
        row = conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return row["value"] if row else default
    finally:
        conn.close()


def setting_set(key: str, value: str) -> None:
    with db_transaction() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO settings(key,value) VALUES(?,?)",
            (key, value),
        )


def run_integrity_check() -> str:
    conn = get_conn()
    try:
        row = conn.execute("PRAGMA integrity_check;").fetchone()
        return row[0] if row else "error"
    finally:
        conn.close()


def maybe_run_integrity_check(force: bool = False) -> Tuple[bool, str]:
    today = date.today()
    if not force:
        last = str(get_config_value("last_integrity_check", ""))
        if last:
            try:
                last_date = date.fromisoformat(last)
                if (today - last_date).days < 7:
                    return True, ""
            except ValueError:
                pass
    result = run_integrity_check()
    set_config_value("last_integrity_check", today.isoformat())
    ok = result.strip().lower() == "ok"
    if not ok:
        log.warning("integrity check failed: %s", result)
    return ok, result


def iter_audit_log(action: str | None = None) -> Iterator[sqlite3.Row]:
    conn = get_conn()
    try:
        if action:
            rows = conn.execute(
                "SELECT * FROM audit_log WHERE action=? ORDER BY id", (action,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM audit_log ORDER BY id").fetchall()
    finally:
        conn.close()
    yield from rows
