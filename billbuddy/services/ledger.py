"""In-memory per-table orders, kept until a bill is committed."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, List, Optional

from ..core.bus import EventBus
from ..core.money import Totals, compute_totals, round_qty, to_money

log = logging.getLogger(__name__)

DEFAULT_TAX_PCT = Decimal("5")
DEFAULT_DISCOUNT_PCT = Decimal("0")
_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True, slots=True)
class MenuItem:
    id: str
    name: str
    price: Decimal
    half_price: Optional[Decimal] = None
    category: Optional[str] = None


@dataclass(slots=True)
class OrderLine:
    item_id: str
    name: str
    price: Decimal
    quantity: Decimal

    @property
    def amount(self) -> Decimal:
        return to_money(self.price * self.quantity)


@dataclass(slots=True)
class TableOrder:
    table_id: str
    lines: Dict[str, OrderLine] = field(default_factory=dict)
    tax_pct: Decimal = DEFAULT_TAX_PCT
    discount_pct: Decimal = DEFAULT_DISCOUNT_PCT

    @property
    def totals(self) -> Totals:
        return compute_totals(self.lines.values(), self.tax_pct, self.discount_pct)


def _line_for(item: MenuItem, quantity: Decimal) -> OrderLine:
    # the catalog price is frozen into the line; later catalog edits don't touch it
    return OrderLine(item_id=item.id, name=item.name, price=Decimal(str(item.price)), quantity=quantity)


class OrderLedger:
    """What each table has ordered, before it becomes a durable bill.

    Every mutation is synchronous and total: unknown tables or lines are
    ignored rather than reported. A line never holds a quantity of zero or
    less; such an update removes it.

    Events on ``bus``:
        ``table_state_changed(table_id, "occupied" | "free")``
        ``table_total_changed(table_id, total)``
    """

    __slots__ = ("bus", "orders", "default_tax_pct", "default_discount_pct")

    def __init__(
        self,
        bus: EventBus | None = None,
        *,
        default_tax_pct: Decimal | int | str = DEFAULT_TAX_PCT,
        default_discount_pct: Decimal | int | str = DEFAULT_DISCOUNT_PCT,
    ) -> None:
        self.bus = bus if bus is not None else EventBus()
        self.orders: Dict[str, TableOrder] = {}
        self.default_tax_pct = Decimal(str(default_tax_pct))
        self.default_discount_pct = Decimal(str(default_discount_pct))

    # ----- helpers -----
    def _ensure_order(self, table_id: str) -> TableOrder:
        order = self.orders.get(table_id)
        if order is None:
            order = TableOrder(
                table_id=table_id,
                tax_pct=self.default_tax_pct,
                discount_pct=self.default_discount_pct,
            )
            self.orders[table_id] = order
        return order

    def _notify(self, table_id: str, was_occupied: bool) -> None:
        order = self.orders.get(table_id)
        occupied = bool(order and order.lines)
        if occupied != was_occupied:
            self.bus.emit("table_state_changed", table_id, "occupied" if occupied else "free")
        self.bus.emit("table_total_changed", table_id, self.get_totals(table_id).total)

    def _is_occupied(self, table_id: str) -> bool:
        order = self.orders.get(table_id)
        return bool(order and order.lines)

    # ----- mutations -----
    def add_quantity(self, table_id: str, item: MenuItem, delta) -> None:
        was_occupied = self._is_occupied(table_id)
        order = self._ensure_order(table_id)
        line = order.lines.get(item.id)
        previous = line.quantity if line else _ZERO
        quantity = round_qty(previous + Decimal(str(delta)))
        if quantity <= 0:
            order.lines.pop(item.id, None)
        elif line is None:
            order.lines[item.id] = _line_for(item, quantity)
        else:
            line.quantity = quantity
        self._notify(table_id, was_occupied)

    def add_item(self, table_id: str, item: MenuItem) -> None:
        self.add_quantity(table_id, item, _ONE)

    def remove_item(self, table_id: str, item_id: str) -> None:
        order = self.orders.get(table_id)
        if order is None or item_id not in order.lines:
            return
        self.set_quantity(table_id, item_id, order.lines[item_id].quantity - _ONE)

    def set_quantity(self, table_id: str, item_id: str, quantity) -> None:
        """Absolute update of an existing line.

        Lines are only created through :meth:`add_quantity`/:meth:`add_item`
        since a bare ``item_id`` carries no name or price.
        """
        order = self.orders.get(table_id)
        if order is None:
            return
        line = order.lines.get(item_id)
        if line is None:
            return
        new_qty = round_qty(quantity)
        if new_qty <= 0:
            del order.lines[item_id]
        else:
            line.quantity = new_qty
        self._notify(table_id, True)

    def set_bill_adjustments(self, table_id: str, tax_pct, discount_pct) -> None:
        was_occupied = self._is_occupied(table_id)
        order = self._ensure_order(table_id)
        order.tax_pct = Decimal(str(tax_pct))
        order.discount_pct = Decimal(str(discount_pct))
        self._notify(table_id, was_occupied)

    def clear_table(self, table_id: str) -> None:
        order = self.orders.pop(table_id, None)
        if order is None:
            return
        log.debug("cleared table %s (%d lines)", table_id, len(order.lines))
        if order.lines:
            self.bus.emit("table_state_changed", table_id, "free")
        self.bus.emit("table_total_changed", table_id, to_money(0))

    # ----- queries -----
    def get_lines(self, table_id: str) -> List[OrderLine]:
        order = self.orders.get(table_id)
        if order is None:
            return []
        return [replace(line) for line in order.lines.values()]

    def get_totals(self, table_id: str) -> Totals:
        order = self.orders.get(table_id)
        if order is None:
            return compute_totals((), self.default_tax_pct, self.default_discount_pct)
        return order.totals

    def get_order(self, table_id: str) -> Optional[TableOrder]:
        """Detached copy of the table's order, or ``None`` if it has no entry."""
        order = self.orders.get(table_id)
        if order is None:
            return None
        return TableOrder(
            table_id=order.table_id,
            lines={item_id: replace(line) for item_id, line in order.lines.items()},
            tax_pct=order.tax_pct,
            discount_pct=order.discount_pct,
        )

    def open_tables(self) -> List[str]:
        return [table_id for table_id, order in self.orders.items() if order.lines]
