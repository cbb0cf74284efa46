"""Turn an open table order into durable order, bill and due rows."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..core.db import db_transaction, log_action, now_ms
from ..core.errors import DueNotFoundError, PersistenceError
from ..core.money import Totals, compute_totals, to_db
from .ledger import OrderLedger, OrderLine

log = logging.getLogger(__name__)

_STORAGE_ERRORS = (sqlite3.Error, SQLAlchemyError)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass(slots=True)
class _Draft:
    order_id: str
    bill_id: str
    table_id: str
    waiter_id: Optional[str]
    status: str
    lines: List[OrderLine]
    tax_pct: Decimal
    discount_pct: Decimal
    totals: Totals
    created_at: int


def _insert_order(conn, draft: _Draft) -> None:
    conn.execute(
        "INSERT INTO orders(id, table_id, waiter_id, status, created_at) VALUES(?,?,?,?,?)",
        (draft.order_id, str(draft.table_id), draft.waiter_id, draft.status, draft.created_at),
    )


def _insert_items(conn, draft: _Draft) -> int:
    written = 0
    for line in draft.lines:
        if line.quantity <= 0:
            continue
        conn.execute(
            """INSERT INTO order_items(id, order_id, item_id, name, price, quantity)
                   VALUES(?,?,?,?,?,?)""",
            (
                _new_id("oi"),
                draft.order_id,
                line.item_id,
                line.name,
                to_db(line.price),
                float(line.quantity),
            ),
        )
        written += 1
    return written


def _insert_bill(conn, draft: _Draft) -> None:
    conn.execute(
        """INSERT INTO bills(id, order_id, subtotal, tax_pct, discount_pct, total, status, created_at)
               VALUES(?,?,?,?,?,?,?,?)""",
        (
            draft.bill_id,
            draft.order_id,
            to_db(draft.totals.subtotal),
            float(draft.tax_pct),
            float(draft.discount_pct),
            to_db(draft.totals.total),
            draft.status,
            draft.created_at,
        ),
    )


def _insert_due(conn, draft: _Draft, name, phone, photo_uri) -> str:
    due_id = _new_id("d")
    conn.execute(
        """INSERT INTO dues(id, bill_id, name, phone, photo_uri, created_at, paid_at)
               VALUES(?,?,?,?,?,?,NULL)""",
        (due_id, draft.bill_id, _clean(name), _clean(phone), _clean(photo_uri), draft.created_at),
    )
    return due_id


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


class BillingEngine:
    """Atomically promote a ledger entry to durable rows, then clear it.

    Each public operation is one ``BEGIN IMMEDIATE`` transaction: either
    every row is written or none is. The ledger entry for the table is
    cleared only after the commit succeeded, so a failed attempt leaves the
    waiter's order in place for a retry.
    """

    __slots__ = ("ledger",)

    def __init__(self, ledger: OrderLedger) -> None:
        self.ledger = ledger

    def _draft(self, table_id, waiter_id, lines, tax_pct, discount_pct, status) -> _Draft:
        line_list = list(lines)
        tax = Decimal(str(tax_pct))
        discount = Decimal(str(discount_pct))
        return _Draft(
            order_id=_new_id("o"),
            bill_id=_new_id("b"),
            table_id=str(table_id),
            waiter_id=waiter_id,
            status=status,
            lines=line_list,
            tax_pct=tax,
            discount_pct=discount,
            totals=compute_totals(line_list, tax, discount),
            created_at=now_ms(),
        )

    def _announce(self, event_name: str, *args) -> None:
        try:
            self.ledger.bus.emit(event_name, *args)
        except Exception:
            log.exception("listener for %s failed", event_name)

    def _after_commit(self, draft: _Draft, action: str, extra: str | None = None) -> None:
        # the commit already happened: nothing below may turn it into a failure
        try:
            self.ledger.clear_table(draft.table_id)
        except Exception:
            log.exception("listener failed while clearing billed table %s", draft.table_id)
        self._announce("bill_finalized", draft.bill_id, draft.status)
        try:
            log_action(
                draft.waiter_id,
                action,
                "bill",
                draft.bill_id,
                None,
                str(draft.totals.total),
                extra,
            )
        except _STORAGE_ERRORS:
            log.exception("audit entry for bill %s was not written", draft.bill_id)

    def finalize_as_paid(
        self,
        table_id: str,
        waiter_id: Optional[str],
        lines: Iterable[OrderLine],
        tax_pct,
        discount_pct,
    ) -> str:
        draft = self._draft(table_id, waiter_id, lines, tax_pct, discount_pct, "paid")
        try:
            with db_transaction() as conn:
                _insert_order(conn, draft)
                _insert_items(conn, draft)
                _insert_bill(conn, draft)
        except _STORAGE_ERRORS as exc:
            log.error("paid bill for table %s rolled back: %s", draft.table_id, exc)
            raise PersistenceError(f"could not save bill for table {draft.table_id}") from exc

        log.info(
            "table %s paid: bill %s total %s",
            draft.table_id,
            draft.bill_id,
            draft.totals.total,
        )
        self._after_commit(draft, "finalize_paid")
        return draft.bill_id

    def finalize_as_due(
        self,
        table_id: str,
        waiter_id: Optional[str],
        lines: Iterable[OrderLine],
        tax_pct,
        discount_pct,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        photo_ref: Optional[str] = None,
    ) -> str:
        draft = self._draft(table_id, waiter_id, lines, tax_pct, discount_pct, "due")
        try:
            with db_transaction() as conn:
                _insert_order(conn, draft)
                _insert_items(conn, draft)
                _insert_bill(conn, draft)
                due_id = _insert_due(conn, draft, customer_name, customer_phone, photo_ref)
        except _STORAGE_ERRORS as exc:
            log.error("due bill for table %s rolled back: %s", draft.table_id, exc)
            raise PersistenceError(f"could not save due bill for table {draft.table_id}") from exc

        log.info(
            "table %s deferred: bill %s due %s total %s",
            draft.table_id,
            draft.bill_id,
            due_id,
            draft.totals.total,
        )
        self._after_commit(draft, "finalize_due", extra=due_id)
        self._announce("dues_changed")
        return draft.bill_id

    def settle_due(self, due_id: str) -> None:
        """Mark a due as paid together with its bill and order.

        Settling a due that is already paid keeps the original ``paid_at``.
        """
        try:
            with db_transaction() as conn:
                row = conn.execute(
                    """SELECT d.bill_id, d.paid_at, b.order_id
                           FROM dues d
                           JOIN bills b ON b.id = d.bill_id
                           WHERE d.id=?""",
                    (due_id,),
                ).fetchone()
                if row is None:
                    raise DueNotFoundError(due_id)
                if row["paid_at"] is not None:
                    return
                paid_at = now_ms()
                conn.execute("UPDATE dues SET paid_at=? WHERE id=?", (paid_at, due_id))
                conn.execute("UPDATE bills SET status='paid' WHERE id=?", (row["bill_id"],))
                conn.execute("UPDATE orders SET status='paid' WHERE id=?", (row["order_id"],))
        except _STORAGE_ERRORS as exc:
            log.error("settling due %s rolled back: %s", due_id, exc)
            raise PersistenceError(f"could not settle due {due_id}") from exc

        log.info("due %s settled (bill %s)", due_id, row["bill_id"])
        self._announce("dues_changed")
        try:
            log_action(None, "settle_due", "due", due_id, "due", "paid", row["bill_id"])
        except _STORAGE_ERRORS:
            log.exception("audit entry for due %s was not written", due_id)

    # ----- ledger snapshots -----
    def checkout_table(self, table_id: str, waiter_id: Optional[str] = None) -> str:
        """Bill whatever the ledger holds for *table_id* as paid."""
        lines, tax_pct, discount_pct = self._snapshot(table_id)
        return self.finalize_as_paid(table_id, waiter_id, lines, tax_pct, discount_pct)

    def defer_table(
        self,
        table_id: str,
        waiter_id: Optional[str] = None,
        *,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        photo_ref: Optional[str] = None,
    ) -> str:
        lines, tax_pct, discount_pct = self._snapshot(table_id)
        return self.finalize_as_due(
            table_id,
            waiter_id,
            lines,
            tax_pct,
            discount_pct,
            customer_name=customer_name,
            customer_phone=customer_phone,
            photo_ref=photo_ref,
        )

    def _snapshot(self, table_id: str) -> tuple[Sequence[OrderLine], Decimal, Decimal]:
        order = self.ledger.get_order(table_id)
        if order is None:
            return [], self.ledger.default_tax_pct, self.ledger.default_discount_pct
        return list(order.lines.values()), order.tax_pct, order.discount_pct
