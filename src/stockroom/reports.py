"""Read-only reports: stock overview, supplier statistics, low stock and dashboard summary."""
from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import derived, schemas
from .models import (
    Category,
    Product,
    PurchaseOrder,
    StockLevel,
    StockMovement,
    Supplier,
    Warehouse,
)


def stock_status(total_quantity: int, reorder_level: int) -> str:
    if total_quantity <= 0 or total_quantity <= reorder_level:
        return "low"
    if total_quantity <= reorder_level * 2:
        return "normal"
    return "good"


async def _level_rows(session: AsyncSession):
    stmt = (
        select(
            StockLevel.product_id,
            StockLevel.warehouse_id,
            Warehouse.name.label("warehouse_name"),
            StockLevel.quantity,
            StockLevel.reserved_quantity,
        )
        .join(Warehouse, StockLevel.warehouse_id == Warehouse.id)
        .order_by(Warehouse.name)
    )
    return (await session.execute(stmt)).all()


async def stock_overview(
    session: AsyncSession,
    *,
    include_inactive: bool = False,
    search: str | None = None,
    category_id: uuid.UUID | None = None,
    warehouse_id: uuid.UUID | None = None,
    status: str | None = None,
) -> Sequence[schemas.StockOverviewItem]:
    """Per-product totals with a per-warehouse breakdown.

    ``warehouse_id`` keeps products holding a level in that warehouse; their
    breakdown still lists every warehouse. ``status`` is matched after the
    totals are computed.
    """

    per_product: dict = defaultdict(list)
    for row in await _level_rows(session):
        per_product[row.product_id].append(
            schemas.WarehouseStock(
                warehouse_id=row.warehouse_id,
                warehouse_name=row.warehouse_name,
                quantity=row.quantity,
                reserved_quantity=row.reserved_quantity,
                available_quantity=derived.available_quantity(row.quantity, row.reserved_quantity),
            )
        )

    stmt = (
        select(Product, Category.name.label("category_name"))
        .outerjoin(Category, Product.category_id == Category.id)
        .order_by(Product.name)
    )
    if not include_inactive:
        stmt = stmt.where(Product.is_active.is_(True))
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern))
        )
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if warehouse_id is not None:
        stocked_here = select(StockLevel.product_id).where(StockLevel.warehouse_id == warehouse_id)
        stmt = stmt.where(Product.id.in_(stocked_here))
    rows = (await session.execute(stmt)).all()

    overview = []
    for product, category_name in rows:
        warehouses = per_product.get(product.id, [])
        total = sum(entry.quantity for entry in warehouses)
        reserved = sum(entry.reserved_quantity for entry in warehouses)
        product_status = stock_status(total, product.reorder_level)
        if status is not None and product_status != status:
            continue
        overview.append(
            schemas.StockOverviewItem(
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                category_name=category_name,
                reorder_level=product.reorder_level,
                total_quantity=total,
                reserved_quantity=reserved,
                available_quantity=derived.available_quantity(total, reserved),
                status=product_status,
                warehouses=warehouses,
            )
        )
    return overview


async def supplier_overview(
    session: AsyncSession, *, search: str | None = None
) -> Sequence[schemas.SupplierStats]:
    """Suppliers by name with the number of products and purchase orders referencing each."""

    product_count = (
        select(func.count(Product.id))
        .where(Product.supplier_id == Supplier.id)
        .correlate(Supplier)
        .scalar_subquery()
    )
    order_count = (
        select(func.count(PurchaseOrder.id))
        .where(PurchaseOrder.supplier_id == Supplier.id)
        .correlate(Supplier)
        .scalar_subquery()
    )
    stmt = select(
        Supplier, product_count.label("product_count"), order_count.label("order_count")
    ).order_by(Supplier.name)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Supplier.name).like(pattern),
                func.lower(Supplier.contact_name).like(pattern),
                func.lower(Supplier.email).like(pattern),
                func.lower(Supplier.phone).like(pattern),
            )
        )
    rows = (await session.execute(stmt)).all()
    return [
        schemas.SupplierStats(
            **schemas.SupplierOut.model_validate(supplier).model_dump(),
            product_count=products,
            order_count=orders,
        )
        for supplier, products, orders in rows
    ]


async def low_stock(session: AsyncSession) -> Sequence[schemas.LowStockItem]:
    """Active products whose total quantity across warehouses is at or below reorder level."""

    totals = (
        select(
            StockLevel.product_id,
            func.sum(StockLevel.quantity).label("total_quantity"),
        )
        .group_by(StockLevel.product_id)
        .subquery()
    )
    total_quantity = func.coalesce(totals.c.total_quantity, 0)
    stmt = (
        select(
            Product.id,
            Product.sku,
            Product.name,
            Product.reorder_level,
            total_quantity.label("total_quantity"),
        )
        .outerjoin(totals, totals.c.product_id == Product.id)
        .where(Product.is_active.is_(True), total_quantity <= Product.reorder_level)
        .order_by(Product.name)
    )
    rows = (await session.execute(stmt)).all()
    return [
        schemas.LowStockItem(
            product_id=row.id,
            sku=row.sku,
            product_name=row.name,
            total_quantity=row.total_quantity,
            reorder_level=row.reorder_level,
        )
        for row in rows
    ]


async def summary(session: AsyncSession) -> schemas.InventorySummary:
    total_products = (await session.execute(select(func.count(Product.id)))).scalar_one()
    total_warehouses = (await session.execute(select(func.count(Warehouse.id)))).scalar_one()
    total_stock = (
        await session.execute(select(func.coalesce(func.sum(StockLevel.quantity), 0)))
    ).scalar_one()

    movement_rows = (
        await session.execute(
            select(StockMovement.movement_type, func.count(StockMovement.id)).group_by(
                StockMovement.movement_type
            )
        )
    ).all()
    movements_by_type = {"IN": 0, "OUT": 0, "TRANSFER": 0, "ADJUSTMENT": 0}
    movements_by_type.update({movement_type: count for movement_type, count in movement_rows})

    warehouse_rows = (
        await session.execute(
            select(
                Warehouse.id,
                Warehouse.name,
                func.coalesce(func.sum(StockLevel.quantity), 0).label("quantity"),
            )
            .outerjoin(StockLevel, StockLevel.warehouse_id == Warehouse.id)
            .group_by(Warehouse.id, Warehouse.name)
            .order_by(Warehouse.name)
        )
    ).all()

    return schemas.InventorySummary(
        total_products=total_products,
        total_stock_quantity=total_stock,
        total_warehouses=total_warehouses,
        low_stock_items=len(await low_stock(session)),
        movements_by_type=movements_by_type,
        stock_by_warehouse=[
            schemas.WarehouseQuantity(warehouse_id=row.id, warehouse_name=row.name, quantity=row.quantity)
            for row in warehouse_rows
        ],
    )


__all__ = ["stock_status", "stock_overview", "supplier_overview", "low_stock", "summary"]
