"""FastAPI router configuration."""
from __future__ import annotations

import json
import logging
from typing import Sequence
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import auth, crud, importer, movements, purchasing, reports, schemas
from .config import Settings, get_settings
from .database import get_session
from .dependencies import provide_settings, provide_token_signer, require
from .errors import AuthenticationRequired, StockroomError, ValidationError
from .models import (
    Category,
    MovementType,
    OrderStatus,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    StockLevel,
    StockMovement,
    Supplier,
    Warehouse,
)
from .policy import AccessPolicy, Action, AuthenticatedPolicy, Principal
from .resources import build_crud_router

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


@router.post("/auth/token", response_model=schemas.TokenResponse, tags=["auth"])
async def issue_token(
    payload: schemas.TokenRequest,
    session: AsyncSession = Depends(get_session),
    signer: auth.TokenSigner = Depends(provide_token_signer),
) -> schemas.TokenResponse:
    user = await auth.authenticate(session, payload.username, payload.password)
    issued = signer.issue(user.id, payload.expires_in)
    return schemas.TokenResponse(
        token=issued.token,
        issued_at=issued.issued_at,
        expires_at=issued.expires_at,
        expires_in=issued.expires_in,
    )


@router.get("/auth/me", response_model=schemas.UserOut, tags=["auth"])
async def whoami(
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("User", Action.SELECT)),
) -> schemas.UserOut:
    if principal is None:
        raise AuthenticationRequired("Authentication required")
    user = await auth.get_user_by_username(session, principal.username)
    if user is None:
        raise AuthenticationRequired("Authentication required")
    return schemas.UserOut.model_validate(user)


@router.post(
    "/stock-movements",
    response_model=schemas.MovementResult,
    status_code=status.HTTP_201_CREATED,
    tags=["stock movements"],
)
async def create_movement(
    payload: schemas.StockMovementCreate,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
    principal: Principal | None = Depends(require("StockMovement", Action.INSERT)),
) -> schemas.MovementResult:
    movement, level = await movements.record_movement(
        session,
        payload,
        created_by=principal.user_id if principal else None,
        negative_stock_policy=settings.negative_stock_policy,
    )
    return schemas.MovementResult(
        movement=schemas.StockMovementOut.model_validate(movement),
        stock_level=schemas.StockLevelOut.model_validate(level),
    )


@router.get(
    "/stock-movements",
    response_model=list[schemas.StockMovementOut],
    tags=["stock movements"],
)
async def list_movements(
    product_id: UUID | None = None,
    warehouse_id: UUID | None = None,
    movement_type: MovementType | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("StockMovement", Action.SELECT)),
) -> Sequence[schemas.StockMovementOut]:
    rows = await movements.list_movements(
        session,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type.value if movement_type else None,
        limit=limit,
    )
    return [schemas.StockMovementOut.model_validate(row) for row in rows]


@router.get(
    "/stock-movements/{movement_id}",
    response_model=schemas.StockMovementOut,
    tags=["stock movements"],
)
async def get_movement(
    movement_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("StockMovement", Action.SELECT)),
) -> schemas.StockMovementOut:
    movement = await crud.get_entity(session, StockMovement, movement_id)
    return schemas.StockMovementOut.model_validate(movement)


@router.post(
    "/purchase-orders",
    response_model=schemas.PurchaseOrderOut,
    status_code=status.HTTP_201_CREATED,
    tags=["purchase orders"],
)
async def create_purchase_order(
    payload: schemas.PurchaseOrderCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrder", Action.INSERT)),
) -> schemas.PurchaseOrderOut:
    order = await purchasing.create_purchase_order(
        session, payload, created_by=principal.user_id if principal else None
    )
    await session.commit()
    return schemas.PurchaseOrderOut.model_validate(order)


@router.get(
    "/purchase-orders",
    response_model=list[schemas.PurchaseOrderOut],
    tags=["purchase orders"],
)
async def list_purchase_orders(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    supplier_id: UUID | None = None,
    warehouse_id: UUID | None = None,
    search: str | None = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrder", Action.SELECT)),
) -> Sequence[schemas.PurchaseOrderOut]:
    orders = await purchasing.list_purchase_orders(
        session,
        status=status_filter.value if status_filter else None,
        supplier_id=supplier_id,
        warehouse_id=warehouse_id,
        search=search,
    )
    return [schemas.PurchaseOrderOut.model_validate(order) for order in orders]


@router.get(
    "/purchase-orders/{order_id}",
    response_model=schemas.PurchaseOrderOut,
    tags=["purchase orders"],
)
async def get_purchase_order(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrder", Action.SELECT)),
) -> schemas.PurchaseOrderOut:
    order = await purchasing.get_purchase_order(session, order_id)
    return schemas.PurchaseOrderOut.model_validate(order)


@router.put(
    "/purchase-orders/{order_id}",
    response_model=schemas.PurchaseOrderOut,
    tags=["purchase orders"],
)
async def update_purchase_order(
    order_id: UUID,
    payload: schemas.PurchaseOrderUpdate,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrder", Action.UPDATE)),
) -> schemas.PurchaseOrderOut:
    order = await purchasing.update_purchase_order(session, order_id, payload)
    await session.commit()
    return schemas.PurchaseOrderOut.model_validate(order)


@router.delete(
    "/purchase-orders/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["purchase orders"],
)
async def delete_purchase_order(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrder", Action.DELETE)),
) -> None:
    await crud.delete_entity(session, PurchaseOrder, order_id)
    await session.commit()


@router.post(
    "/purchase-orders/{order_id}/items",
    response_model=schemas.PurchaseOrderItemOut,
    status_code=status.HTTP_201_CREATED,
    tags=["purchase orders"],
)
async def add_purchase_order_item(
    order_id: UUID,
    payload: schemas.PurchaseOrderItemCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrderItem", Action.INSERT)),
) -> schemas.PurchaseOrderItemOut:
    item = await purchasing.add_item(session, order_id, payload)
    await session.commit()
    return schemas.PurchaseOrderItemOut.model_validate(item)


@router.get(
    "/purchase-orders/{order_id}/items",
    response_model=list[schemas.PurchaseOrderItemOut],
    tags=["purchase orders"],
)
async def list_purchase_order_items(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrderItem", Action.SELECT)),
) -> Sequence[schemas.PurchaseOrderItemOut]:
    items = await purchasing.list_items(session, order_id)
    return [schemas.PurchaseOrderItemOut.model_validate(item) for item in items]


@router.put(
    "/purchase-order-items/{item_id}",
    response_model=schemas.PurchaseOrderItemOut,
    tags=["purchase orders"],
)
async def update_purchase_order_item(
    item_id: UUID,
    payload: schemas.PurchaseOrderItemUpdate,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrderItem", Action.UPDATE)),
) -> schemas.PurchaseOrderItemOut:
    item = await crud.update_entity(session, PurchaseOrderItem, item_id, payload)
    await session.commit()
    return schemas.PurchaseOrderItemOut.model_validate(item)


@router.delete(
    "/purchase-order-items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["purchase orders"],
)
async def delete_purchase_order_item(
    item_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("PurchaseOrderItem", Action.DELETE)),
) -> None:
    await crud.delete_entity(session, PurchaseOrderItem, item_id)
    await session.commit()


@router.get(
    "/reports/stock-overview",
    response_model=list[schemas.StockOverviewItem],
    tags=["reports"],
)
async def stock_overview(
    filters: schemas.StockOverviewFilters = Depends(),
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("StockLevel", Action.SELECT)),
) -> Sequence[schemas.StockOverviewItem]:
    return await reports.stock_overview(session, **filters.model_dump())


@router.get("/reports/suppliers", response_model=list[schemas.SupplierStats], tags=["reports"])
async def supplier_overview(
    filters: schemas.SupplierFilters = Depends(),
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("Supplier", Action.SELECT)),
) -> Sequence[schemas.SupplierStats]:
    return await reports.supplier_overview(session, search=filters.search)


@router.get("/reports/low-stock", response_model=list[schemas.LowStockItem], tags=["reports"])
async def low_stock(
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("StockLevel", Action.SELECT)),
) -> Sequence[schemas.LowStockItem]:
    return await reports.low_stock(session)


@router.get("/reports/summary", response_model=schemas.InventorySummary, tags=["reports"])
async def inventory_summary(
    session: AsyncSession = Depends(get_session),
    principal: Principal | None = Depends(require("StockLevel", Action.SELECT)),
) -> schemas.InventorySummary:
    return await reports.summary(session)


_IMPORT_ENTITIES = {
    "products": "Product",
    "categories": "Category",
    "suppliers": "Supplier",
    "warehouses": "Warehouse",
}


async def _extract_import_rows(request: Request) -> list[dict]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if upload is None or isinstance(upload, str) or not upload.filename:
            raise ValidationError("Missing upload file", details={"field": "file"})
        try:
            data = await upload.read()
        finally:
            await upload.close()
        return importer.parse_upload(upload.filename, data)
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Unsupported import payload") from exc
    return importer.parse_json_payload(payload)


def _import_route(entity_path: str):
    async def run_import(
        request: Request,
        session: AsyncSession = Depends(get_session),
        principal: Principal | None = Depends(require(_IMPORT_ENTITIES[entity_path], Action.INSERT)),
    ) -> schemas.ImportResult:
        rows = await _extract_import_rows(request)
        return await importer.import_rows(session, entity_path, rows)

    run_import.__name__ = f"import_{entity_path}"
    return run_import


for _entity_path in _IMPORT_ENTITIES:
    router.add_api_route(
        f"/import/{_entity_path}",
        _import_route(_entity_path),
        methods=["POST"],
        response_model=schemas.ImportResult,
        tags=["import"],
    )


crud_routers = [
    build_crud_router(
        prefix="/categories",
        model=Category,
        create_schema=schemas.CategoryCreate,
        update_schema=schemas.CategoryUpdate,
        out_schema=schemas.CategoryOut,
        filter_schema=schemas.CategoryFilters,
        tag="categories",
    ),
    build_crud_router(
        prefix="/suppliers",
        model=Supplier,
        create_schema=schemas.SupplierCreate,
        update_schema=schemas.SupplierUpdate,
        out_schema=schemas.SupplierOut,
        filter_schema=schemas.NoFilters,
        tag="suppliers",
    ),
    build_crud_router(
        prefix="/warehouses",
        model=Warehouse,
        create_schema=schemas.WarehouseCreate,
        update_schema=schemas.WarehouseUpdate,
        out_schema=schemas.WarehouseOut,
        filter_schema=schemas.NoFilters,
        tag="warehouses",
    ),
    build_crud_router(
        prefix="/products",
        model=Product,
        create_schema=schemas.ProductCreate,
        update_schema=schemas.ProductUpdate,
        out_schema=schemas.ProductOut,
        filter_schema=schemas.ProductFilters,
        tag="products",
    ),
    build_crud_router(
        prefix="/stock-levels",
        model=StockLevel,
        create_schema=schemas.StockLevelCreate,
        update_schema=schemas.StockLevelUpdate,
        out_schema=schemas.StockLevelOut,
        filter_schema=schemas.StockLevelFilters,
        tag="stock levels",
    ),
]


async def _handle_stockroom_error(request: Request, exc: StockroomError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationRequired) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(settings: Settings | None = None, policy: AccessPolicy | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.access_policy = policy or AuthenticatedPolicy()
    app.dependency_overrides[provide_settings] = lambda: settings
    app.add_exception_handler(StockroomError, _handle_stockroom_error)
    app.include_router(router)
    for crud_router in crud_routers:
        app.include_router(crud_router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
