"""Stock movement ledger and its effect on stock levels.

Recording a movement inserts the ledger row and adjusts the matching
``StockLevel`` in the same transaction. The level is changed with a
server-side ``quantity = quantity + delta`` update, and movements for the
same (product, warehouse) pair are additionally serialized inside the
process, so concurrent movements never lose an update.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, derived, schemas
from .errors import ConstraintViolation, PartialFailure, StockroomError, ValidationError
from .models import StockLevel, StockMovement, utcnow

logger = logging.getLogger(__name__)

NegativeStockPolicy = Literal["allow", "reject"]


class KeyedLock:
    """A registry of :class:`asyncio.Lock` objects created on demand per key."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: Counter[Hashable] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                self._locks.pop(key, None)


level_locks = KeyedLock()


async def get_level(
    session: AsyncSession, product_id: uuid.UUID, warehouse_id: uuid.UUID
) -> StockLevel | None:
    stmt = (
        select(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.warehouse_id == warehouse_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def apply_delta(
    session: AsyncSession, product_id: uuid.UUID, warehouse_id: uuid.UUID, delta: int
) -> StockLevel:
    """Add ``delta`` to the level of a pair, creating the row when it is missing."""

    increment = (
        update(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.warehouse_id == warehouse_id)
        .values(quantity=StockLevel.quantity + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(increment)
    if result.rowcount == 0:
        try:
            async with session.begin_nested():
                session.add(
                    StockLevel(product_id=product_id, warehouse_id=warehouse_id, quantity=delta)
                )
        except IntegrityError:
            # Another transaction opened the pair first.
            await session.execute(increment)
    level = await get_level(session, product_id, warehouse_id)
    if level is None:
        raise ConstraintViolation(
            "Stock level could not be created",
            details={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
        )
    return level


async def _rollback(session: AsyncSession, data: schemas.StockMovementCreate) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError as exc:
        logger.exception(
            "Rollback failed while recording %s movement for product %s in warehouse %s",
            data.movement_type.value,
            data.product_id,
            data.warehouse_id,
        )
        raise PartialFailure(
            "The movement may have been recorded without updating the stock level",
            details={
                "product_id": str(data.product_id),
                "warehouse_id": str(data.warehouse_id),
            },
        ) from exc


async def record_movement(
    session: AsyncSession,
    data: schemas.StockMovementCreate,
    *,
    created_by: uuid.UUID | None = None,
    negative_stock_policy: NegativeStockPolicy = "allow",
) -> tuple[StockMovement, StockLevel]:
    """Insert a movement, apply it to its stock level and commit.

    Unlike the plain store functions this one owns the commit: the per-pair
    lock has to cover the whole transaction. On any failure both writes are
    rolled back; ``PartialFailure`` is raised only when the rollback itself
    fails.
    """

    values = data.model_dump()
    values["movement_type"] = data.movement_type.value
    delta = derived.movement_delta(values["movement_type"], data.quantity)

    async with level_locks.hold((data.product_id, data.warehouse_id)):
        try:
            await crud.ensure_references(session, StockMovement, values)
            movement = StockMovement(**values, created_by=created_by)
            session.add(movement)
            await session.flush()

            level = await apply_delta(session, data.product_id, data.warehouse_id, delta)
            if negative_stock_policy == "reject" and delta < 0 and level.quantity < 0:
                raise ValidationError(
                    "Insufficient stock for this movement",
                    details={
                        "product_id": str(data.product_id),
                        "warehouse_id": str(data.warehouse_id),
                        "available": level.quantity - delta,
                        "requested": -delta,
                    },
                )
            await session.commit()
        except StockroomError:
            await _rollback(session, data)
            raise
        except IntegrityError as exc:
            await _rollback(session, data)
            raise ConstraintViolation(
                "Stock movement violates a database constraint",
                details={"reason": str(exc.orig)},
            ) from exc
        except SQLAlchemyError:
            await _rollback(session, data)
            raise

    logger.info(
        "Recorded %s movement of %s for product %s in warehouse %s (level now %s)",
        movement.movement_type,
        movement.quantity,
        movement.product_id,
        movement.warehouse_id,
        level.quantity,
    )
    return movement, level


async def list_movements(
    session: AsyncSession,
    *,
    product_id: uuid.UUID | None = None,
    warehouse_id: uuid.UUID | None = None,
    movement_type: str | None = None,
    limit: int | None = None,
):
    return await crud.list_entities(
        session,
        StockMovement,
        filters={
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "movement_type": movement_type,
        },
        limit=limit,
    )


__all__ = [
    "KeyedLock",
    "level_locks",
    "get_level",
    "apply_delta",
    "record_movement",
    "list_movements",
]
