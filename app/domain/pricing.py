# app/domain/pricing.py
"""Order pricing in integer minor units (cents).

Prices arrive as ``Decimal`` with two places; everything is summed as
``int`` so totals never drift, and converted back only for storage.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.domain.cart import CartLineSnapshot
from app.domain.errors import ValidationError

_CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(_CENT)


def line_total_minor(line: CartLineSnapshot) -> int:
    if line.quantity < 1:
        raise ValidationError(f"Invalid quantity {line.quantity} for product {line.product_id}")
    unit = to_minor_units(line.unit_price)
    if unit < 0:
        raise ValidationError(f"Invalid price for product {line.product_id}")
    return unit * line.quantity


def order_total_minor(lines: Iterable[CartLineSnapshot]) -> int:
    return sum((line_total_minor(line) for line in lines), 0)
