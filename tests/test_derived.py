from decimal import Decimal

import pytest

from stockroom import derived
from stockroom.models import PurchaseOrderItem, StockLevel


def test_available_quantity_is_not_clamped() -> None:
    assert derived.available_quantity(10, 3) == 7
    assert derived.available_quantity(2, 5) == -3
    assert derived.available_quantity(None, None) == 0


def test_line_total_rounds_to_cents() -> None:
    assert derived.line_total(3, Decimal("1.005")) == Decimal("3.03")
    assert derived.line_total(0, Decimal("4.50")) == Decimal("0.00")
    assert derived.line_total(None, None) == Decimal("0.00")


def test_order_total_sums_line_totals() -> None:
    assert derived.order_total([Decimal("10.00"), Decimal("2.50")]) == Decimal("12.50")
    assert derived.order_total([]) == Decimal("0.00")


@pytest.mark.parametrize(
    ("movement_type", "quantity", "expected"),
    [
        ("IN", 10, 10),
        ("OUT", 4, -4),
        ("TRANSFER", 3, -3),
        ("ADJUSTMENT", 7, 7),
        ("ADJUSTMENT", -7, -7),
    ],
)
def test_movement_delta(movement_type: str, quantity: int, expected: int) -> None:
    assert derived.movement_delta(movement_type, quantity) == expected


def test_movement_delta_rejects_unknown_type() -> None:
    with pytest.raises(ValueError):
        derived.movement_delta("RETURN", 1)


def test_hybrid_properties_follow_their_inputs() -> None:
    level = StockLevel(quantity=12, reserved_quantity=5)
    assert level.available_quantity == 7
    level.reserved_quantity = 15
    assert level.available_quantity == -3

    item = PurchaseOrderItem(quantity_ordered=4, unit_price=Decimal("2.25"))
    assert item.total_price == Decimal("9.00")
    item.quantity_ordered = 5
    assert item.total_price == Decimal("11.25")
