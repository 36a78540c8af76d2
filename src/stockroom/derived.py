"""Derived values computed from a row's own fields.

These are never stored on their own; models expose them as hybrid properties
that call into the functions below so every read sees the current inputs.
"""
from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Quantize ``value`` to two fraction digits."""

    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def available_quantity(quantity: int | None, reserved_quantity: int | None) -> int:
    """On-hand minus reserved. Not clamped: over-reservation yields a negative value."""

    return (quantity or 0) - (reserved_quantity or 0)


def line_total(quantity_ordered: int | None, unit_price: Decimal | None) -> Decimal:
    return to_money((quantity_ordered or 0) * to_money(unit_price))


def order_total(line_totals: Iterable[Decimal]) -> Decimal:
    return to_money(sum(line_totals, Decimal("0")))


def movement_delta(movement_type: str, quantity: int) -> int:
    """Signed change a movement applies to its stock level.

    IN and ADJUSTMENT add ``quantity``; OUT and TRANSFER subtract it. A
    TRANSFER only affects the source warehouse.
    """

    if movement_type in ("IN", "ADJUSTMENT"):
        return quantity
    if movement_type in ("OUT", "TRANSFER"):
        return -quantity
    raise ValueError(f"Unknown movement type: {movement_type!r}")


__all__ = [
    "CENT",
    "to_money",
    "available_quantity",
    "line_total",
    "order_total",
    "movement_delta",
]
