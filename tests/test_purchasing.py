from __future__ import annotations

import re
import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from factories import make_product, make_supplier, make_warehouse
from stockroom import crud, purchasing, schemas
from stockroom.errors import ConstraintViolation, NotFound
from stockroom.models import OrderStatus, PurchaseOrder, PurchaseOrderItem


@pytest.fixture()
async def parties(session):
    supplier = await make_supplier(session, "Northwind Traders")
    warehouse = await make_warehouse(session)
    bolt = await make_product(session, sku="BOLT", name="Bolt")
    nut = await make_product(session, sku="NUT", name="Nut")
    await session.commit()
    return supplier, warehouse, bolt, nut


def _order(supplier, warehouse, *items, **fields) -> schemas.PurchaseOrderCreate:
    return schemas.PurchaseOrderCreate(
        supplier_id=supplier.id,
        warehouse_id=warehouse.id,
        items=[
            schemas.PurchaseOrderItemCreate(
                product_id=product.id, quantity_ordered=quantity, unit_price=Decimal(price)
            )
            for product, quantity, price in items
        ],
        **fields,
    )


def test_generated_po_number_format() -> None:
    number = purchasing.generate_po_number(date(2024, 3, 9))
    assert re.fullmatch(r"PO202403\d{4}", number)


async def test_create_order_totals_its_items(session, parties) -> None:
    supplier, warehouse, bolt, nut = parties

    order = await purchasing.create_purchase_order(
        session, _order(supplier, warehouse, (bolt, 10, "1.50"), (nut, 4, "0.25"))
    )
    await session.commit()

    assert order.total_amount == Decimal("16.00")
    assert order.status == OrderStatus.DRAFT.value
    assert order.order_date == date.today()
    assert re.fullmatch(r"PO\d{10}", order.po_number)
    assert sorted(item.total_price for item in order.items) == [Decimal("1.00"), Decimal("15.00")]


async def test_explicit_po_number_must_be_unique(session, parties) -> None:
    supplier, warehouse, _, _ = parties
    await purchasing.create_purchase_order(session, _order(supplier, warehouse, po_number="PO-1"))
    await session.commit()

    with pytest.raises(ConstraintViolation):
        await purchasing.create_purchase_order(
            session, _order(supplier, warehouse, po_number="PO-1")
        )


async def test_update_replaces_items_and_recomputes_total(session, parties) -> None:
    supplier, warehouse, bolt, nut = parties
    order = await purchasing.create_purchase_order(
        session, _order(supplier, warehouse, (bolt, 10, "1.50"))
    )
    await session.commit()

    updated = await purchasing.update_purchase_order(
        session,
        order.id,
        schemas.PurchaseOrderUpdate(
            status=OrderStatus.PENDING,
            items=[schemas.PurchaseOrderItemCreate(product_id=nut.id, quantity_ordered=3, unit_price=Decimal("2.00"))],
        ),
    )
    await session.commit()

    assert updated.status == "PENDING"
    assert updated.total_amount == Decimal("6.00")
    assert [item.product_id for item in updated.items] == [nut.id]
    count = await session.execute(select(func.count(PurchaseOrderItem.id)))
    assert count.scalar_one() == 1


async def test_update_without_items_keeps_them(session, parties) -> None:
    supplier, warehouse, bolt, _ = parties
    order = await purchasing.create_purchase_order(
        session, _order(supplier, warehouse, (bolt, 2, "5.00"))
    )
    await session.commit()

    updated = await purchasing.update_purchase_order(
        session, order.id, schemas.PurchaseOrderUpdate(notes="call before delivery")
    )

    assert updated.notes == "call before delivery"
    assert updated.total_amount == Decimal("10.00")
    assert len(updated.items) == 1


async def test_item_writes_keep_order_total_current(session, parties) -> None:
    supplier, warehouse, bolt, nut = parties
    order = await purchasing.create_purchase_order(session, _order(supplier, warehouse))
    await session.commit()
    assert order.total_amount == Decimal("0.00")

    item = await purchasing.add_item(
        session,
        order.id,
        schemas.PurchaseOrderItemCreate(product_id=bolt.id, quantity_ordered=5, unit_price=Decimal("2.00")),
    )
    await purchasing.add_item(
        session,
        order.id,
        schemas.PurchaseOrderItemCreate(product_id=nut.id, quantity_ordered=1, unit_price=Decimal("0.50")),
    )
    await session.commit()
    order = await purchasing.get_purchase_order(session, order.id)
    assert order.total_amount == Decimal("10.50")

    await crud.update_entity(
        session, PurchaseOrderItem, item.id, schemas.PurchaseOrderItemUpdate(quantity_ordered=6)
    )
    order = await purchasing.get_purchase_order(session, order.id)
    assert order.total_amount == Decimal("12.50")

    await crud.delete_entity(session, PurchaseOrderItem, item.id)
    await session.commit()
    order = await purchasing.get_purchase_order(session, order.id)
    assert order.total_amount == Decimal("0.50")
    assert len(await purchasing.list_items(session, order.id)) == 1


async def test_adding_item_to_missing_order_fails(session, parties) -> None:
    _, _, bolt, _ = parties
    with pytest.raises(NotFound):
        await purchasing.add_item(
            session, uuid.uuid4(), schemas.PurchaseOrderItemCreate(product_id=bolt.id)
        )


async def test_deleting_order_cascades_to_items(session, parties) -> None:
    supplier, warehouse, bolt, nut = parties
    order = await purchasing.create_purchase_order(
        session, _order(supplier, warehouse, (bolt, 1, "1.00"), (nut, 1, "1.00"))
    )
    await session.commit()

    await crud.delete_entity(session, PurchaseOrder, order.id)
    await session.commit()

    count = await session.execute(select(func.count(PurchaseOrderItem.id)))
    assert count.scalar_one() == 0


async def test_list_orders_filters_and_searches(session, parties) -> None:
    supplier, warehouse, _, _ = parties
    other = await make_supplier(session, "Contoso")
    await session.commit()
    await purchasing.create_purchase_order(session, _order(supplier, warehouse, po_number="PO-A"))
    await purchasing.create_purchase_order(
        session, _order(other, warehouse, po_number="PO-B", status=OrderStatus.PENDING)
    )
    await session.commit()

    by_supplier = await purchasing.list_purchase_orders(session, search="northwind")
    assert [order.po_number for order in by_supplier] == ["PO-A"]

    by_number = await purchasing.list_purchase_orders(session, search="po-b")
    assert [order.po_number for order in by_number] == ["PO-B"]

    pending = await purchasing.list_purchase_orders(session, status="PENDING")
    assert [order.po_number for order in pending] == ["PO-B"]

    everything = await purchasing.list_purchase_orders(session, warehouse_id=warehouse.id)
    assert {order.po_number for order in everything} == {"PO-A", "PO-B"}
