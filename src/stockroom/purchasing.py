"""Purchase orders and their line items."""
from __future__ import annotations

import logging
import random
import uuid
from datetime import date

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, schemas
from .errors import ConstraintViolation
from .models import PurchaseOrder, PurchaseOrderItem, Supplier

logger = logging.getLogger(__name__)

_PO_NUMBER_ATTEMPTS = 20


def generate_po_number(today: date | None = None) -> str:
    """Return a number of the form ``PO{YYYY}{MM}{NNNN}``."""

    today = today or date.today()
    return f"PO{today:%Y%m}{random.randint(0, 9999):04d}"


async def next_po_number(session: AsyncSession, today: date | None = None) -> str:
    for _ in range(_PO_NUMBER_ATTEMPTS):
        candidate = generate_po_number(today)
        try:
            await crud.ensure_unique(session, PurchaseOrder, {"po_number": candidate})
        except ConstraintViolation:
            continue
        return candidate
    raise ConstraintViolation(
        "Could not allocate a free purchase order number",
        details={"attempts": _PO_NUMBER_ATTEMPTS},
    )


async def _add_items(
    session: AsyncSession, order_id: uuid.UUID, items: list[schemas.PurchaseOrderItemCreate]
) -> None:
    for item in items:
        await crud.create_entity(session, PurchaseOrderItem, item, purchase_order_id=order_id)


async def create_purchase_order(
    session: AsyncSession,
    data: schemas.PurchaseOrderCreate,
    *,
    created_by: uuid.UUID | None = None,
) -> PurchaseOrder:
    values = data.model_dump(exclude={"items"})
    values["status"] = data.status.value
    if values.get("po_number") is None:
        values["po_number"] = await next_po_number(session)
    if values.get("order_date") is None:
        values["order_date"] = date.today()
    order = await crud.create_entity(session, PurchaseOrder, values, created_by=created_by)
    await _add_items(session, order.id, data.items)
    order = await crud.refresh_order_total(session, order.id)
    logger.info("Created purchase order %s with %d item(s)", order.po_number, len(data.items))
    return order


async def update_purchase_order(
    session: AsyncSession, order_id: uuid.UUID, data: schemas.PurchaseOrderUpdate
) -> PurchaseOrder:
    """Update header fields; a non-null ``items`` list replaces every line item."""

    values = data.model_dump(exclude_unset=True, exclude={"items"})
    if values.get("status") is not None:
        values["status"] = data.status.value
    order = await crud.update_entity(session, PurchaseOrder, order_id, values)
    if data.items is not None:
        await session.execute(
            delete(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == order.id)
        )
        await _add_items(session, order.id, data.items)
    return await crud.refresh_order_total(session, order.id)


async def get_purchase_order(session: AsyncSession, order_id: uuid.UUID) -> PurchaseOrder:
    order = await crud.get_entity(session, PurchaseOrder, order_id)
    await session.refresh(order, attribute_names=["items"])
    return order


async def list_purchase_orders(
    session: AsyncSession,
    *,
    status: str | None = None,
    supplier_id: uuid.UUID | None = None,
    warehouse_id: uuid.UUID | None = None,
    search: str | None = None,
):
    """List orders, optionally matching ``search`` against PO number or supplier name."""

    stmt = select(PurchaseOrder).join(Supplier, PurchaseOrder.supplier_id == Supplier.id)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    if warehouse_id is not None:
        stmt = stmt.where(PurchaseOrder.warehouse_id == warehouse_id)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(PurchaseOrder.po_number).like(pattern),
                func.lower(Supplier.name).like(pattern),
            )
        )
    stmt = stmt.order_by(PurchaseOrder.created_at.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def add_item(
    session: AsyncSession, order_id: uuid.UUID, data: schemas.PurchaseOrderItemCreate
) -> PurchaseOrderItem:
    await crud.get_entity(session, PurchaseOrder, order_id)
    return await crud.create_entity(session, PurchaseOrderItem, data, purchase_order_id=order_id)


async def list_items(session: AsyncSession, order_id: uuid.UUID):
    await crud.get_entity(session, PurchaseOrder, order_id)
    return await crud.list_entities(
        session, PurchaseOrderItem, filters={"purchase_order_id": order_id}
    )


__all__ = [
    "generate_po_number",
    "next_po_number",
    "create_purchase_order",
    "update_purchase_order",
    "get_purchase_order",
    "list_purchase_orders",
    "add_item",
    "list_items",
]
