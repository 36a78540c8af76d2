"""Utility helpers for administrative tasks."""
from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from . import auth
from .database import Base, create_session_factory, engine
from .main import configure_logging

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create database tables for the application."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def add_user(username: str, password: str, db_engine: AsyncEngine | None = None) -> None:
    session_factory = create_session_factory(db_engine or engine)
    async with session_factory() as session:
        user = await auth.create_user(session, username, password)
        await session.commit()
        logger.info("Created user %s (%s)", user.username, user.id)


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    configure_logging()
    asyncio.run(init_database())


def cli_create_user(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create a Stockroom API user.")
    parser.add_argument("username")
    parser.add_argument("password")
    args = parser.parse_args(argv)
    configure_logging()
    asyncio.run(add_user(args.username, args.password))


if __name__ == "__main__":
    cli_init_database()
