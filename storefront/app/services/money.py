"""
Money helpers for the cart: Decimal arithmetic, rounding and display strings.

Floats never take part in a total; they are converted through ``str()`` first.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Protocol, Union

Number = Union[str, int, float, Decimal]

MONEY_PRECISION = Decimal("0.01")
ZERO = Decimal("0")

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


class Priced(Protocol):
    unit_price: Decimal
    quantity: int


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    None and unparseable values become Decimal("0").
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Number) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def line_subtotal(unit_price: Number, quantity: int) -> Decimal:
    return to_decimal(unit_price) * int(quantity)


def cart_subtotal(items: Iterable[Priced]) -> Decimal:
    """Σ unit_price × quantity, unrounded."""
    return sum((line_subtotal(it.unit_price, it.quantity) for it in items), ZERO)


def units(items: Iterable[Priced]) -> int:
    """Σ quantity: total units, not distinct products."""
    return sum(int(it.quantity) for it in items)


def format_currency(value: Number, currency: str = "USD") -> str:
    """
    Format a monetary value for display.

        >>> format_currency(Decimal("1234.5"))
        '$1,234.50'
        >>> format_currency(3, "CHF")
        '3.00 CHF'
    """
    amount = round_money(value)
    sign = "-" if amount < 0 else ""
    formatted = f"{abs(amount):,.2f}"
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{sign}{symbol}{formatted}"
    return f"{sign}{formatted} {currency.upper()}"


@dataclass(frozen=True)
class OrderSummary:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def formatted(self, currency: str = "USD") -> dict:
        return {
            "subtotal": format_currency(self.subtotal, currency),
            "shipping": "Free" if self.shipping == ZERO else format_currency(self.shipping, currency),
            "tax": format_currency(self.tax, currency),
            "total": format_currency(self.total, currency),
        }


def summarize(subtotal: Number, *, shipping_flat_fee: Number, tax_rate: Number) -> OrderSummary:
    """
    Cart page summary: flat shipping only when something is in the cart,
    tax estimated on the subtotal (shipping is not taxed).
    """
    sub = round_money(subtotal)
    shipping = round_money(shipping_flat_fee) if sub > ZERO else ZERO
    tax = round_money(sub * to_decimal(tax_rate))
    return OrderSummary(subtotal=sub, shipping=shipping, tax=tax, total=sub + shipping + tax)
