"""Entity store: constraint-checked create, read, update and delete.

Foreign keys, unique keys and ``ON DELETE`` rules are enforced here rather
than left to the database, so the same behaviour holds on every backend and
failures surface as :mod:`stockroom.errors` exceptions:

* a colliding unique key or a dangling reference raises ``ConstraintViolation``
* a missing row raises ``NotFound``
* deleting a row that a ``RESTRICT`` reference still points at raises
  ``RestrictedDelete`` before anything is modified

Functions flush but never commit; the caller owns the transaction.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import derived
from .database import Base
from .errors import ConstraintViolation, NotFound, RestrictedDelete, ValidationError
from .models import (
    Category,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    StockLevel,
    StockMovement,
    Supplier,
    User,
    Warehouse,
    utcnow,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

REFERENCES: dict[type[Base], dict[str, type[Base]]] = {
    Category: {"parent_id": Category},
    Product: {"category_id": Category, "supplier_id": Supplier},
    StockLevel: {"product_id": Product, "warehouse_id": Warehouse},
    StockMovement: {"product_id": Product, "warehouse_id": Warehouse},
    PurchaseOrder: {"supplier_id": Supplier, "warehouse_id": Warehouse},
    PurchaseOrderItem: {"purchase_order_id": PurchaseOrder, "product_id": Product},
}

UNIQUE_KEYS: dict[type[Base], tuple[tuple[str, ...], ...]] = {
    Product: (("sku",),),
    PurchaseOrder: (("po_number",),),
    StockLevel: (("product_id", "warehouse_id"),),
    User: (("username",),),
}


@dataclass(frozen=True)
class Dependent:
    model: type[Base]
    column: str
    rule: Literal["cascade", "restrict", "set_null"]


DEPENDENTS: dict[type[Base], tuple[Dependent, ...]] = {
    Category: (
        Dependent(Category, "parent_id", "set_null"),
        Dependent(Product, "category_id", "set_null"),
    ),
    Supplier: (
        Dependent(PurchaseOrder, "supplier_id", "restrict"),
        Dependent(Product, "supplier_id", "set_null"),
    ),
    Warehouse: (
        Dependent(PurchaseOrder, "warehouse_id", "restrict"),
        Dependent(StockLevel, "warehouse_id", "cascade"),
        Dependent(StockMovement, "warehouse_id", "cascade"),
    ),
    Product: (
        Dependent(PurchaseOrderItem, "product_id", "restrict"),
        Dependent(StockLevel, "product_id", "cascade"),
        Dependent(StockMovement, "product_id", "cascade"),
    ),
    PurchaseOrder: (Dependent(PurchaseOrderItem, "purchase_order_id", "cascade"),),
}

DEFAULT_ORDERING: dict[type[Base], tuple[str, ...]] = {
    Category: ("name",),
    Supplier: ("name",),
    Warehouse: ("name",),
    Product: ("name", "sku"),
    StockLevel: ("product_id", "warehouse_id"),
    StockMovement: ("-created_at",),
    PurchaseOrder: ("-created_at",),
    PurchaseOrderItem: ("created_at",),
    User: ("username",),
}


def entity_name(model: type[Base]) -> str:
    return model.__name__


def _as_values(data: BaseModel | Mapping[str, Any], *, partial: bool) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=partial)
    return dict(data)


def _ordering(model: type[Base]) -> list[Any]:
    clauses = []
    for name in DEFAULT_ORDERING.get(model, ()):
        if name.startswith("-"):
            clauses.append(getattr(model, name[1:]).desc())
        else:
            clauses.append(getattr(model, name))
    return clauses


def _touch(obj: Base) -> None:
    if hasattr(obj, "updated_at"):
        obj.updated_at = utcnow()


async def exists(session: AsyncSession, model: type[Base], entity_id: uuid.UUID) -> bool:
    stmt = select(func.count()).select_from(model).where(model.id == entity_id)
    return bool((await session.execute(stmt)).scalar_one())


async def ensure_references(
    session: AsyncSession, model: type[Base], values: Mapping[str, Any]
) -> None:
    """Raise ``ConstraintViolation`` for any referenced row that does not exist."""

    for column, target in REFERENCES.get(model, {}).items():
        target_id = values.get(column)
        if target_id is None:
            continue
        if not await exists(session, target, target_id):
            raise ConstraintViolation(
                f"{entity_name(target)} {target_id} referenced by {entity_name(model)}.{column} does not exist",
                details={"entity": entity_name(model), "field": column, "id": str(target_id)},
            )


async def ensure_unique(
    session: AsyncSession,
    model: type[Base],
    values: Mapping[str, Any],
    *,
    exclude_id: uuid.UUID | None = None,
) -> None:
    for key in UNIQUE_KEYS.get(model, ()):
        if not all(column in values for column in key):
            continue
        stmt = select(func.count()).select_from(model).where(
            *(getattr(model, column) == values[column] for column in key)
        )
        if exclude_id is not None:
            stmt = stmt.where(model.id != exclude_id)
        if (await session.execute(stmt)).scalar_one():
            fields = ", ".join(f"{column}={values[column]}" for column in key)
            raise ConstraintViolation(
                f"{entity_name(model)} with {fields} already exists",
                details={"entity": entity_name(model), "fields": list(key)},
            )


def _ensure_required(model: type[Base], values: Mapping[str, Any]) -> None:
    table = model.__table__
    for name, value in values.items():
        column = table.columns.get(name)
        if column is not None and value is None and not column.nullable:
            raise ValidationError(
                f"{entity_name(model)}.{name} may not be null",
                details={"entity": entity_name(model), "field": name},
            )


async def _ensure_category_acyclic(
    session: AsyncSession, category_id: uuid.UUID, parent_id: uuid.UUID | None
) -> None:
    seen = {category_id}
    current = parent_id
    while current is not None:
        if current in seen:
            raise ValidationError(
                "Category parent chain would form a cycle",
                details={"id": str(category_id), "parent_id": str(parent_id)},
            )
        seen.add(current)
        stmt = select(Category.parent_id).where(Category.id == current)
        current = (await session.execute(stmt)).scalar_one_or_none()


def _ensure_mutable(model: type[Base]) -> None:
    if model is StockMovement:
        raise ValidationError(
            "Stock movements are append-only and cannot be changed or deleted",
            details={"entity": entity_name(model)},
        )


async def _flush(session: AsyncSession, model: type[Base]) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConstraintViolation(
            f"{entity_name(model)} violates a database constraint",
            details={"entity": entity_name(model), "reason": str(exc.orig)},
        ) from exc


async def refresh_order_total(session: AsyncSession, order_id: uuid.UUID) -> PurchaseOrder | None:
    """Recompute ``total_amount`` from the order's items."""

    order = await session.get(PurchaseOrder, order_id)
    if order is None:
        return None
    stmt = select(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == order_id)
    items = (await session.execute(stmt)).scalars().all()
    order.total_amount = derived.order_total(item.total_price for item in items)
    _touch(order)
    await session.flush()
    await session.refresh(order, attribute_names=["items"])
    return order


async def _after_write(session: AsyncSession, obj: Base, previous: Mapping[str, Any]) -> None:
    if isinstance(obj, PurchaseOrderItem):
        order_ids = {obj.purchase_order_id, previous.get("purchase_order_id")}
        for order_id in order_ids - {None}:
            await refresh_order_total(session, order_id)


async def get_entity(session: AsyncSession, model: type[ModelT], entity_id: uuid.UUID) -> ModelT:
    stmt = select(model).where(model.id == entity_id)
    result = await session.execute(stmt)
    obj = result.scalar_one_or_none()
    if obj is None:
        raise NotFound(entity_name(model), entity_id)
    return obj


async def list_entities(
    session: AsyncSession,
    model: type[ModelT],
    *,
    filters: Mapping[str, Any] | None = None,
    limit: int | None = None,
) -> Sequence[ModelT]:
    stmt = select(model)
    for column, value in (filters or {}).items():
        if value is not None:
            stmt = stmt.where(getattr(model, column) == value)
    stmt = stmt.order_by(*_ordering(model))
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_entity(
    session: AsyncSession,
    model: type[ModelT],
    data: BaseModel | Mapping[str, Any],
    **extra: Any,
) -> ModelT:
    if model is StockMovement:
        raise ValidationError(
            "Stock movements must be recorded with movements.record_movement",
            details={"entity": entity_name(model)},
        )
    values = _as_values(data, partial=False)
    values.update(extra)
    _ensure_required(model, values)
    await ensure_references(session, model, values)
    await ensure_unique(session, model, values)
    obj = model(**values)
    session.add(obj)
    await _flush(session, model)
    await _after_write(session, obj, {})
    return obj


async def update_entity(
    session: AsyncSession,
    model: type[ModelT],
    entity_id: uuid.UUID,
    data: BaseModel | Mapping[str, Any],
) -> ModelT:
    """Apply the fields the caller set and refresh ``updated_at``."""

    _ensure_mutable(model)
    obj = await get_entity(session, model, entity_id)
    values = _as_values(data, partial=True)
    _ensure_required(model, values)
    await ensure_references(session, model, values)
    if model is Category and "parent_id" in values:
        await _ensure_category_acyclic(session, obj.id, values["parent_id"])

    changed_keys: dict[str, Any] = {}
    for key in UNIQUE_KEYS.get(model, ()):
        if any(column in values for column in key):
            for column in key:
                changed_keys[column] = values.get(column, getattr(obj, column))
    if changed_keys:
        await ensure_unique(session, model, changed_keys, exclude_id=obj.id)

    previous = {field: getattr(obj, field) for field in values}
    for field, value in values.items():
        setattr(obj, field, value)
    _touch(obj)
    await _flush(session, model)
    await _after_write(session, obj, previous)
    return obj


async def delete_entity(session: AsyncSession, model: type[Base], entity_id: uuid.UUID) -> None:
    """Delete a row, applying the restrict, cascade and set-null rules of its dependents."""

    _ensure_mutable(model)
    obj = await get_entity(session, model, entity_id)
    dependents = DEPENDENTS.get(model, ())

    for dependent in dependents:
        if dependent.rule != "restrict":
            continue
        column = getattr(dependent.model, dependent.column)
        stmt = select(func.count()).select_from(dependent.model).where(column == entity_id)
        count = (await session.execute(stmt)).scalar_one()
        if count:
            raise RestrictedDelete(
                f"{entity_name(model)} {entity_id} is referenced by {count} "
                f"{entity_name(dependent.model)} row(s)",
                details={
                    "entity": entity_name(model),
                    "id": str(entity_id),
                    "referenced_by": entity_name(dependent.model),
                    "count": count,
                },
            )

    for dependent in dependents:
        column = getattr(dependent.model, dependent.column)
        if dependent.rule == "cascade":
            await session.execute(delete(dependent.model).where(column == entity_id))
        elif dependent.rule == "set_null":
            values: dict[str, Any] = {dependent.column: None}
            if hasattr(dependent.model, "updated_at"):
                values["updated_at"] = utcnow()
            await session.execute(update(dependent.model).where(column == entity_id).values(**values))

    order_id = obj.purchase_order_id if isinstance(obj, PurchaseOrderItem) else None
    await session.execute(delete(model).where(model.id == entity_id))
    await _flush(session, model)
    logger.info("Deleted %s %s", entity_name(model), entity_id)
    if order_id is not None:
        await refresh_order_total(session, order_id)


__all__ = [
    "REFERENCES",
    "UNIQUE_KEYS",
    "DEPENDENTS",
    "Dependent",
    "entity_name",
    "exists",
    "ensure_references",
    "ensure_unique",
    "refresh_order_total",
    "get_entity",
    "list_entities",
    "create_entity",
    "update_entity",
    "delete_entity",
]
