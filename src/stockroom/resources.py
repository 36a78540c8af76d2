"""Generic CRUD routers for entities without bespoke write rules."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .database import Base, get_session
from .dependencies import require
from .policy import Action, Principal


def build_crud_router(
    *,
    prefix: str,
    model: type[Base],
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    out_schema: type[BaseModel],
    filter_schema: type[BaseModel],
    tag: str,
) -> APIRouter:
    """Return a router exposing create, list, get, update and delete for ``model``.

    Schemas are bound at definition time, so this module must not use
    postponed annotation evaluation.
    """

    entity = model.__name__
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.post("", response_model=out_schema, status_code=status.HTTP_201_CREATED)
    async def create_item(
        payload: create_schema,
        session: AsyncSession = Depends(get_session),
        principal: Principal = Depends(require(entity, Action.INSERT)),
    ):
        obj = await crud.create_entity(session, model, payload)
        await session.commit()
        return out_schema.model_validate(obj)

    @router.get("", response_model=list[out_schema])
    async def list_items(
        filters: filter_schema = Depends(),
        session: AsyncSession = Depends(get_session),
        principal: Principal = Depends(require(entity, Action.SELECT)),
    ):
        rows = await crud.list_entities(session, model, filters=filters.model_dump())
        return [out_schema.model_validate(row) for row in rows]

    @router.get("/{item_id}", response_model=out_schema)
    async def get_item(
        item_id: UUID,
        session: AsyncSession = Depends(get_session),
        principal: Principal = Depends(require(entity, Action.SELECT)),
    ):
        obj = await crud.get_entity(session, model, item_id)
        return out_schema.model_validate(obj)

    @router.put("/{item_id}", response_model=out_schema)
    async def update_item(
        item_id: UUID,
        payload: update_schema,
        session: AsyncSession = Depends(get_session),
        principal: Principal = Depends(require(entity, Action.UPDATE)),
    ):
        obj = await crud.update_entity(session, model, item_id, payload)
        await session.commit()
        return out_schema.model_validate(obj)

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_item(
        item_id: UUID,
        session: AsyncSession = Depends(get_session),
        principal: Principal = Depends(require(entity, Action.DELETE)),
    ) -> None:
        await crud.delete_entity(session, model, item_id)
        await session.commit()

    return router


__all__ = ["build_crud_router"]
