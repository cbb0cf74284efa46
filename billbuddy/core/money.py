"""Money and quantity arithmetic shared by the ledger, billing and reports."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Protocol

_DECIMAL_2_PLACES = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class PricedLine(Protocol):
    price: Decimal
    quantity: Decimal


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return _ZERO
    if isinstance(value, Decimal):
        return value
    # ``str`` keeps 0.1 as 0.1 instead of the binary float expansion.
    return Decimal(str(value))


def to_money(value: Any) -> Decimal:
    """Convert *value* to a :class:`~decimal.Decimal` rounded to two places."""
    return _as_decimal(value).quantize(_DECIMAL_2_PLACES, rounding=ROUND_HALF_UP)


def round_qty(value: Any) -> Decimal:
    """Quantities move in 0.5 steps but are kept to two places like prices."""
    return _as_decimal(value).quantize(_DECIMAL_2_PLACES, rounding=ROUND_HALF_UP)


def fmt_money(value: Any, currency: str = "₹") -> str:
    amount = to_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}{currency}{abs(amount):,}"


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
        }


def line_amount(line: PricedLine) -> Decimal:
    return _as_decimal(line.price) * _as_decimal(line.quantity)


def compute_totals(lines: Iterable[PricedLine], tax_pct: Any, discount_pct: Any) -> Totals:
    """Bill totals for *lines* with flat tax and discount percentages.

    The total is ``max(0, subtotal + subtotal*tax/100 - subtotal*discount/100)``
    on the exact amounts, rounded to cents once. The displayed subtotal, tax
    and discount are each rounded on their own, so they may differ from the
    total by a cent. The total never drops below zero.
    """
    exact = sum((line_amount(line) for line in lines), _ZERO)
    tax_exact = exact * _as_decimal(tax_pct) / _HUNDRED
    discount_exact = exact * _as_decimal(discount_pct) / _HUNDRED
    total = max(_ZERO, exact + tax_exact - discount_exact)
    return Totals(
        subtotal=to_money(exact),
        tax=to_money(tax_exact),
        discount=to_money(discount_exact),
        total=to_money(total),
    )


def to_db(value: Any) -> float:
    """SQLite stores money as REAL; go through the rounded decimal first."""
    return float(to_money(value))
