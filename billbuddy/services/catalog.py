"""Read access to the co-resident catalog (tables and menu items)."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from ..core.bus import EventBus, bus as default_bus
from ..core.db import db_transaction, get_conn, log_action
from ..core.money import to_money
from .ledger import MenuItem

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TableInfo:
    id: str
    name: str
    status: str = "empty"


def _row_to_item(row) -> MenuItem:
    half = row["half_price"]
    return MenuItem(
        id=row["id"],
        name=row["name"],
        price=to_money(row["price"]),
        half_price=None if half is None else to_money(half),
        category=row["category"] or None,
    )


def list_tables() -> List[TableInfo]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT id, name, status FROM tables ORDER BY name, id").fetchall()
    finally:
        conn.close()
    return [TableInfo(id=row["id"], name=row["name"], status=row["status"]) for row in rows]


def list_items(search: str = "") -> List[MenuItem]:
    query = "SELECT id, name, price, half_price, category FROM items "
    params: tuple = ()
    if search:
        query += "WHERE name LIKE ? "
        params = (f"%{search.strip()}%",)
    query += "ORDER BY name COLLATE NOCASE, id"
    conn = get_conn()
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    return [_row_to_item(row) for row in rows]


def get_item(item_id: str) -> Optional[MenuItem]:
    conn = get_conn()
    try:
        row = conn.execute(
            "SELECT id, name, price, half_price, category FROM items WHERE id=?",
            (item_id,),
        ).fetchone()
    finally:
        conn.close()
    return None if row is None else _row_to_item(row)


def upsert_table(
    name: str,
    table_id: str | None = None,
    *,
    username: str = "system",
    bus: EventBus = default_bus,
) -> TableInfo:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("table name is required")
    tid = table_id or uuid.uuid4().hex
    with db_transaction() as conn:
        conn.execute(
            """INSERT INTO tables(id, name) VALUES(?, ?)
                   ON CONFLICT(id) DO UPDATE SET name=excluded.name""",
            (tid, cleaned),
        )
        row = conn.execute("SELECT status FROM tables WHERE id=?", (tid,)).fetchone()
    log_action(username, "upsert_table", "table", tid, None, cleaned)
    bus.emit("catalog_changed")
    return TableInfo(id=tid, name=cleaned, status=row["status"])


def upsert_item(
    name: str,
    price,
    item_id: str | None = None,
    *,
    half_price=None,
    category: str | None = None,
    username: str = "system",
    bus: EventBus = default_bus,
) -> MenuItem:
    """Create or replace a menu item.

    Editing an item never reaches into open or billed orders: lines keep
    the name and price they were captured with. The category, however, is
    joined live by the analytics reader.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("item name is required")
    amount = to_money(price)
    if amount <= 0:
        raise ValueError("price must be positive")
    half = None if half_price in (None, "") else to_money(half_price)
    if half is not None and half <= 0:
        raise ValueError("half price must be positive")
    cat = (category or "").strip() or None
    iid = item_id or uuid.uuid4().hex
    with db_transaction() as conn:
        conn.execute(
            """INSERT INTO items(id, name, price, half_price, category) VALUES(?,?,?,?,?)
                   ON CONFLICT(id) DO UPDATE SET
                       name=excluded.name,
                       price=excluded.price,
                       half_price=excluded.half_price,
                       category=excluded.category""",
            (iid, cleaned, float(amount), None if half is None else float(half), cat),
        )
    log_action(username, "upsert_item", "item", iid, None, f"{cleaned}:{amount}")
    log.debug("catalog item %s saved (%s, %s)", iid, cleaned, amount)
    bus.emit("catalog_changed")
    return MenuItem(id=iid, name=cleaned, price=amount, half_price=half, category=cat)


def half_portion_price(item: MenuItem) -> Decimal:
    """Shown on the "Half" button; a half line is still billed as 0.5 × price."""
    if item.half_price is not None:
        return item.half_price
    return to_money(item.price / 2)
