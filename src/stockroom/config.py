"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKROOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="Stockroom Inventory Service",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./stockroom.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level applied by configure_logging().",
    )
    secret_key: str = Field(
        default="stockroom-secret-key",
        description="Secret used to sign API tokens.",
    )
    api_token_salt: str = Field(default="stockroom-api-token")
    api_token_default_age: int = Field(
        default=3600,
        gt=0,
        description="Token lifetime in seconds when the caller does not ask for one.",
    )
    api_token_max_age: int = Field(
        default=60 * 60 * 24 * 30,
        gt=0,
        description="Upper bound for requested token lifetimes, in seconds.",
    )
    negative_stock_policy: Literal["allow", "reject"] = Field(
        default="allow",
        description=(
            "'allow' keeps the signed result of every movement, including a "
            "negative opening balance; 'reject' refuses movements that would "
            "leave a stock level below zero."
        ),
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
