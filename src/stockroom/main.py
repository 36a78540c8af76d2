"""ASGI entrypoint for running the service."""
from __future__ import annotations

import logging

import uvicorn

from .config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    if settings.echo_sql:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def run() -> None:
    """Convenience wrapper used by ``python -m stockroom``."""

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "stockroom.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
