"""History, dues and sales analytics read from the bills ledger."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.config_store import get_config_value
from ..core.db import get_conn
from ..core.errors import ReadError
from ..core.money import round_qty, to_money

log = logging.getLogger(__name__)

_STORAGE_ERRORS = (sqlite3.Error, SQLAlchemyError)
_TREND_DAYS = 7
_TOP_ITEMS = 5
_OTHER_CATEGORY = "Other"
_ZERO = Decimal("0")


@dataclass(slots=True)
class HistoryRow:
    id: str
    order_id: str
    table: str
    date: datetime
    total: Decimal
    status: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "table": self.table,
            "date": self.date.isoformat(sep=" ", timespec="seconds"),
            "total": str(self.total),
            "status": self.status,
        }


@dataclass(slots=True)
class OrderItemRow:
    id: str
    order_id: str
    item_id: str
    name: str
    price: Decimal
    quantity: Decimal

    @property
    def amount(self) -> Decimal:
        return to_money(self.price * self.quantity)


@dataclass(slots=True)
class DueRow:
    id: str
    bill_id: str
    name: Optional[str]
    phone: Optional[str]
    photo_uri: Optional[str]
    amount: Decimal
    table: str
    created_at: datetime
    paid_at: Optional[datetime]

    @property
    def paid(self) -> bool:
        return self.paid_at is not None


@dataclass(slots=True)
class DailySales:
    day: date
    amount: Decimal


@dataclass(slots=True)
class CategorySales:
    category: str
    amount: Decimal


@dataclass(slots=True)
class TopItem:
    item_id: str
    name: str
    quantity: Decimal
    amount: Decimal


@dataclass(slots=True)
class AnalyticsTotals:
    today_sales: Decimal = _ZERO
    week_sales: Decimal = _ZERO
    paid_count_today: int = 0
    items_sold_today: Decimal = _ZERO
    tax_collected_today: Decimal = _ZERO
    avg_order_today: Decimal = _ZERO
    dues_outstanding: Decimal = _ZERO
    due_count_today: int = 0
    conversion_today: Decimal = _ZERO


@dataclass(slots=True)
class AnalyticsSummary:
    trend_last_7_days: List[DailySales]
    totals: AnalyticsTotals
    sales_by_category_today: List[CategorySales] = field(default_factory=list)
    top_items_today: List[TopItem] = field(default_factory=list)

    def as_dict(self) -> dict:
        t = self.totals
        return {
            "trend_last_7_days": [
                {"day": d.day.isoformat(), "amount": str(d.amount)} for d in self.trend_last_7_days
            ],
            "totals": {
                "today_sales": str(t.today_sales),
                "week_sales": str(t.week_sales),
                "paid_count_today": t.paid_count_today,
                "items_sold_today": str(t.items_sold_today),
                "tax_collected_today": str(t.tax_collected_today),
                "avg_order_today": str(t.avg_order_today),
                "dues_outstanding": str(t.dues_outstanding),
                "due_count_today": t.due_count_today,
                "conversion_today": str(t.conversion_today),
            },
            "sales_by_category_today": [
                {"category": c.category, "amount": str(c.amount)} for c in self.sales_by_category_today
            ],
            "top_items_today": [
                {"item_id": i.item_id, "name": i.name, "quantity": str(i.quantity), "amount": str(i.amount)}
                for i in self.top_items_today
            ],
        }


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000)


def _day_start_ms(day: date) -> int:
    # naive datetimes are local time, so DST days stay midnight-to-midnight
    return int(datetime.combine(day, time.min).timestamp() * 1000)


def _range_for_day(day: date) -> tuple[int, int]:
    return _day_start_ms(day), _day_start_ms(day + timedelta(days=1))


@contextmanager
def _reader(what: str):
    try:
        conn = get_conn()
    except _STORAGE_ERRORS as exc:
        raise ReadError(f"could not load {what}") from exc
    try:
        yield conn
    except _STORAGE_ERRORS as exc:
        raise ReadError(f"could not load {what}") from exc
    finally:
        conn.close()


def load_history(limit: int | None = None) -> List[HistoryRow]:
    """Most recent bills of any status, newest first.

    *limit* defaults to the ``history_limit`` setting (50).
    """
    if limit is None:
        limit = int(get_config_value("history_limit", 50))
    with _reader("bill history") as conn:
        rows = conn.execute(
            """SELECT b.id, b.order_id, b.total, b.status, b.created_at, o.table_id
                   FROM bills b
                   JOIN orders o ON o.id = b.order_id
                   ORDER BY b.created_at DESC, b.rowid DESC
                   LIMIT ?""",
            (max(0, int(limit)),),
        ).fetchall()
    return [
        HistoryRow(
            id=row["id"],
            order_id=row["order_id"],
            table=row["table_id"],
            date=_from_ms(row["created_at"]),
            total=to_money(row["total"]),
            status=row["status"],
        )
        for row in rows
    ]


def load_order_items(order_id: str) -> List[OrderItemRow]:
    with _reader(f"items of order {order_id}") as conn:
        rows = conn.execute(
            """SELECT id, order_id, item_id, name, price, quantity
                   FROM order_items
                   WHERE order_id=?
                   ORDER BY rowid""",
            (order_id,),
        ).fetchall()
    return [
        OrderItemRow(
            id=row["id"],
            order_id=row["order_id"],
            item_id=row["item_id"],
            name=row["name"],
            price=to_money(row["price"]),
            quantity=round_qty(row["quantity"]),
        )
        for row in rows
    ]


def list_dues(include_settled: bool = False) -> List[DueRow]:
    """Dues with the amount and table of their bill, newest first."""
    query = """SELECT d.id, d.bill_id, d.name, d.phone, d.photo_uri, d.created_at, d.paid_at,
                      b.total, o.table_id
                   FROM dues d
                   JOIN bills b ON b.id = d.bill_id
                   JOIN orders o ON o.id = b.order_id """
    if not include_settled:
        query += "WHERE d.paid_at IS NULL "
    query += "ORDER BY d.created_at DESC, d.rowid DESC"
    with _reader("dues") as conn:
        rows = conn.execute(query).fetchall()
    return [
        DueRow(
            id=row["id"],
            bill_id=row["bill_id"],
            name=row["name"],
            phone=row["phone"],
            photo_uri=row["photo_uri"],
            amount=to_money(row["total"]),
            table=row["table_id"],
            created_at=_from_ms(row["created_at"]),
            paid_at=None if row["paid_at"] is None else _from_ms(row["paid_at"]),
        )
        for row in rows
    ]


def load_analytics(now: datetime | None = None) -> AnalyticsSummary:
    """Sales figures relative to *now* (local time).

    Only paid bills count as sales. A due that is settled later turns its
    bill into a paid one on the day the bill was created. ``due_count_today``
    counts bills deferred today whether or not they were settled since.
    Categories are read from the current catalog, so renaming an item's
    category moves its past sales too.
    """
    reference = now or datetime.now()
    today = reference.date()
    days = [today - timedelta(days=offset) for offset in range(_TREND_DAYS - 1, -1, -1)]
    window_start = _day_start_ms(days[0])
    today_start, today_end = _range_for_day(today)

    with _reader("analytics") as conn:
        cur = conn.cursor()
        trend_rows = cur.execute(
            """SELECT total, created_at FROM bills
                   WHERE status='paid' AND created_at >= ? AND created_at < ?""",
            (window_start, today_end),
        ).fetchall()

        paid_row = cur.execute(
            """SELECT COUNT(*) AS cnt,
                      COALESCE(SUM(subtotal * tax_pct / 100.0), 0) AS tax
                   FROM bills
                   WHERE status='paid' AND created_at >= ? AND created_at < ?""",
            (today_start, today_end),
        ).fetchone()

        items_row = cur.execute(
            """SELECT COALESCE(SUM(oi.quantity), 0) AS qty
                   FROM order_items oi
                   JOIN bills b ON b.order_id = oi.order_id
                   WHERE b.status='paid' AND b.created_at >= ? AND b.created_at < ?""",
            (today_start, today_end),
        ).fetchone()

        outstanding_row = cur.execute(
            """SELECT COALESCE(SUM(b.total), 0) AS amt
                   FROM bills b
                   LEFT JOIN dues d ON d.bill_id = b.id
                   WHERE b.status='due' AND d.paid_at IS NULL"""
        ).fetchone()

        due_count_row = cur.execute(
            """SELECT COUNT(DISTINCT b.id) AS cnt
                   FROM bills b
                   JOIN dues d ON d.bill_id = b.id
                   WHERE b.created_at >= ? AND b.created_at < ?""",
            (today_start, today_end),
        ).fetchone()

        category_rows = cur.execute(
            """SELECT COALESCE(NULLIF(TRIM(i.category), ''), ?) AS category,
                      SUM(oi.price * oi.quantity) AS amt
                   FROM order_items oi
                   JOIN bills b ON b.order_id = oi.order_id
                   LEFT JOIN items i ON i.id = oi.item_id
                   WHERE b.status='paid' AND b.created_at >= ? AND b.created_at < ?
                   GROUP BY 1
                   ORDER BY amt DESC, category""",
            (_OTHER_CATEGORY, today_start, today_end),
        ).fetchall()

        top_rows = cur.execute(
            """SELECT oi.item_id, MAX(oi.name) AS name,
                      SUM(oi.quantity) AS qty,
                      SUM(oi.price * oi.quantity) AS amt
                   FROM order_items oi
                   JOIN bills b ON b.order_id = oi.order_id
                   WHERE b.status='paid' AND b.created_at >= ? AND b.created_at < ?
                   GROUP BY oi.item_id
                   ORDER BY amt DESC, oi.item_id
                   LIMIT ?""",
            (today_start, today_end, _TOP_ITEMS),
        ).fetchall()

    by_day: Dict[date, Decimal] = {day: _ZERO for day in days}
    for row in trend_rows:
        day = _from_ms(row["created_at"]).date()
        if day in by_day:
            by_day[day] += to_money(row["total"])
    trend = [DailySales(day=day, amount=to_money(by_day[day])) for day in days]

    today_sales = trend[-1].amount
    paid_count = int(paid_row["cnt"] or 0)
    due_count = int(due_count_row["cnt"] or 0)
    decided = paid_count + due_count

    totals = AnalyticsTotals(
        today_sales=today_sales,
        week_sales=to_money(sum((d.amount for d in trend), _ZERO)),
        paid_count_today=paid_count,
        items_sold_today=round_qty(items_row["qty"]),
        tax_collected_today=to_money(paid_row["tax"]),
        avg_order_today=to_money(today_sales / paid_count) if paid_count else to_money(0),
        dues_outstanding=to_money(outstanding_row["amt"]),
        due_count_today=due_count,
        conversion_today=(
            (Decimal(paid_count) / Decimal(decided)).quantize(Decimal("0.0001"))
            if decided
            else Decimal("0")
        ),
    )
    log.debug("analytics for %s: %s paid, %s due", today, paid_count, due_count)

    return AnalyticsSummary(
        trend_last_7_days=trend,
        totals=totals,
        sales_by_category_today=[
            CategorySales(category=row["category"], amount=to_money(row["amt"]))
            for row in category_rows
        ],
        top_items_today=[
            TopItem(
                item_id=row["item_id"],
                name=row["name"],
                quantity=round_qty(row["qty"]),
                amount=to_money(row["amt"]),
            )
            for row in top_rows
        ],
    )
