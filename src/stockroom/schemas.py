"""Pydantic schemas used by the API.

Derived fields (``available_quantity``, ``total_price``, ``total_amount``)
only appear on the ``*Out`` schemas; input schemas ignore unknown keys, so a
caller-supplied value for them is dropped before it reaches the store.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from .derived import to_money
from .models import MovementType, OrderStatus

# Largest value a Numeric(10, 2) column holds.
MAX_MONEY = Decimal("99999999.99")

# Input amounts are rounded half-up to cents.
Money = Annotated[Decimal, Field(ge=0, le=MAX_MONEY), AfterValidator(to_money)]


class _Input(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class _Output(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(_Input):
    name: str = Field(..., min_length=1)
    description: str = ""
    parent_id: uuid.UUID | None = None


class CategoryUpdate(_Input):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    parent_id: uuid.UUID | None = None


class CategoryOut(_Output):
    id: uuid.UUID
    name: str
    description: str
    parent_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


class SupplierCreate(_Input):
    name: str = Field(..., min_length=1)
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


class SupplierUpdate(_Input):
    name: str | None = Field(default=None, min_length=1)
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class SupplierOut(_Output):
    id: uuid.UUID
    name: str
    contact_name: str
    email: str
    phone: str
    address: str
    created_at: datetime
    updated_at: datetime


class WarehouseCreate(_Input):
    name: str = Field(..., min_length=1)
    location: str = ""
    capacity: int = Field(0, ge=0)


class WarehouseUpdate(_Input):
    name: str | None = Field(default=None, min_length=1)
    location: str | None = None
    capacity: int | None = Field(default=None, ge=0)


class WarehouseOut(_Output):
    id: uuid.UUID
    name: str
    location: str
    capacity: int
    created_at: datetime
    updated_at: datetime


class ProductCreate(_Input):
    sku: str = Field(..., min_length=1, description="Unique stock keeping unit identifier.")
    name: str = Field(..., min_length=1)
    description: str = ""
    category_id: uuid.UUID | None = None
    supplier_id: uuid.UUID | None = None
    unit_price: Money = Decimal("0")
    cost_price: Money = Decimal("0")
    reorder_level: int = Field(0, ge=0)
    reorder_quantity: int = Field(0, ge=0)
    unit_of_measure: str = Field("pcs", description="Unit of measurement, e.g. pcs, kg, liters.")
    barcode: str = ""
    is_active: bool = True


class ProductUpdate(_Input):
    sku: str | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    category_id: uuid.UUID | None = None
    supplier_id: uuid.UUID | None = None
    unit_price: Money | None = None
    cost_price: Money | None = None
    reorder_level: int | None = Field(default=None, ge=0)
    reorder_quantity: int | None = Field(default=None, ge=0)
    unit_of_measure: str | None = None
    barcode: str | None = None
    is_active: bool | None = None


class ProductOut(_Output):
    id: uuid.UUID
    sku: str
    name: str
    description: str
    category_id: uuid.UUID | None
    supplier_id: uuid.UUID | None
    unit_price: Decimal
    cost_price: Decimal
    reorder_level: int
    reorder_quantity: int
    unit_of_measure: str
    barcode: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class StockLevelCreate(_Input):
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    quantity: int = 0
    reserved_quantity: int = Field(0, ge=0)
    last_counted_at: datetime | None = None


class StockLevelUpdate(_Input):
    quantity: int | None = None
    reserved_quantity: int | None = Field(default=None, ge=0)
    last_counted_at: datetime | None = None


class StockLevelOut(_Output):
    id: uuid.UUID
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    quantity: int
    reserved_quantity: int
    available_quantity: int
    last_counted_at: datetime | None
    updated_at: datetime


class StockMovementCreate(_Input):
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    movement_type: MovementType
    quantity: int = Field(..., description="Unsigned for IN/OUT/TRANSFER; signed for ADJUSTMENT.")
    reference_number: str = ""
    notes: str = ""

    @model_validator(mode="after")
    def _check_quantity(self) -> "StockMovementCreate":
        if self.quantity == 0:
            raise ValueError("quantity must not be zero")
        if self.movement_type is not MovementType.ADJUSTMENT and self.quantity < 0:
            raise ValueError(
                f"quantity must be positive for {self.movement_type.value} movements"
            )
        return self


class StockMovementOut(_Output):
    id: uuid.UUID
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    movement_type: MovementType
    quantity: int
    reference_number: str
    notes: str
    created_by: uuid.UUID | None
    created_at: datetime


class MovementResult(BaseModel):
    movement: StockMovementOut
    stock_level: StockLevelOut


class PurchaseOrderItemCreate(_Input):
    product_id: uuid.UUID
    quantity_ordered: int = Field(0, ge=0)
    quantity_received: int = Field(0, ge=0)
    unit_price: Money = Decimal("0")


class PurchaseOrderItemUpdate(_Input):
    product_id: uuid.UUID | None = None
    quantity_ordered: int | None = Field(default=None, ge=0)
    quantity_received: int | None = Field(default=None, ge=0)
    unit_price: Money | None = None


class PurchaseOrderItemOut(_Output):
    id: uuid.UUID
    purchase_order_id: uuid.UUID
    product_id: uuid.UUID
    quantity_ordered: int
    quantity_received: int
    unit_price: Decimal
    total_price: Decimal
    created_at: datetime


class PurchaseOrderCreate(_Input):
    po_number: str | None = Field(
        default=None, min_length=1, description="Generated when omitted."
    )
    supplier_id: uuid.UUID
    warehouse_id: uuid.UUID
    order_date: date | None = None
    expected_date: date | None = None
    status: OrderStatus = OrderStatus.DRAFT
    notes: str = ""
    items: list[PurchaseOrderItemCreate] = Field(default_factory=list)


class PurchaseOrderUpdate(_Input):
    po_number: str | None = Field(default=None, min_length=1)
    supplier_id: uuid.UUID | None = None
    warehouse_id: uuid.UUID | None = None
    order_date: date | None = None
    expected_date: date | None = None
    status: OrderStatus | None = None
    notes: str | None = None
    items: list[PurchaseOrderItemCreate] | None = Field(
        default=None, description="When present, replaces the order's item set."
    )


class PurchaseOrderOut(_Output):
    id: uuid.UUID
    po_number: str
    supplier_id: uuid.UUID
    warehouse_id: uuid.UUID
    order_date: date
    expected_date: date | None
    status: OrderStatus
    total_amount: Decimal
    notes: str
    created_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime
    items: list[PurchaseOrderItemOut] = Field(default_factory=list)


class NoFilters(BaseModel):
    pass


class CategoryFilters(BaseModel):
    parent_id: uuid.UUID | None = None


class ProductFilters(BaseModel):
    category_id: uuid.UUID | None = None
    supplier_id: uuid.UUID | None = None
    is_active: bool | None = None


class StockLevelFilters(BaseModel):
    product_id: uuid.UUID | None = None
    warehouse_id: uuid.UUID | None = None


StockStatus = Literal["low", "normal", "good"]


class StockOverviewFilters(BaseModel):
    include_inactive: bool = False
    search: str | None = Field(default=None, description="Matched against product name and SKU.")
    category_id: uuid.UUID | None = None
    warehouse_id: uuid.UUID | None = Field(
        default=None, description="Only products holding a stock level in this warehouse."
    )
    status: StockStatus | None = None


class SupplierFilters(BaseModel):
    search: str | None = Field(
        default=None, description="Matched against name, contact name, email and phone."
    )


class WarehouseStock(BaseModel):
    warehouse_id: uuid.UUID
    warehouse_name: str
    quantity: int
    reserved_quantity: int
    available_quantity: int


class StockOverviewItem(BaseModel):
    product_id: uuid.UUID
    sku: str
    product_name: str
    category_name: str | None
    reorder_level: int
    total_quantity: int
    reserved_quantity: int
    available_quantity: int
    status: StockStatus
    warehouses: list[WarehouseStock] = Field(default_factory=list)


class SupplierStats(SupplierOut):
    product_count: int
    order_count: int


class LowStockItem(BaseModel):
    product_id: uuid.UUID
    sku: str
    product_name: str
    total_quantity: int
    reorder_level: int


class WarehouseQuantity(BaseModel):
    warehouse_id: uuid.UUID
    warehouse_name: str
    quantity: int


class InventorySummary(BaseModel):
    total_products: int
    total_stock_quantity: int
    total_warehouses: int
    low_stock_items: int
    movements_by_type: dict[str, int]
    stock_by_warehouse: list[WarehouseQuantity]


class ImportResult(BaseModel):
    entity: str
    success: int
    failed: int
    errors: list[str] = Field(default_factory=list)


class TokenRequest(_Input):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    expires_in: int | None = Field(default=None, description="Requested lifetime in seconds.")


class TokenResponse(BaseModel):
    status: Literal["success"] = "success"
    token: str
    token_type: Literal["Bearer"] = "Bearer"
    issued_at: int
    expires_at: int
    expires_in: int


class UserOut(_Output):
    id: uuid.UUID
    username: str
    is_active: bool
    created_at: datetime


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [name for name in globals() if not name.startswith("_")]
