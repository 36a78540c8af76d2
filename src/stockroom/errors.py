"""Exception hierarchy shared by the store, the services and the API.

Every error carries a human readable ``message``, a machine readable ``code``
and a ``details`` mapping. The API layer renders them as::

    {"error": message, "code": code, "details": {...}}

with the HTTP status given by ``status_code``.

Hierarchy::

    StockroomError
    ├── ValidationError
    ├── NotFound
    ├── ConstraintViolation
    ├── RestrictedDelete
    ├── PartialFailure
    ├── AuthenticationRequired
    └── AccessDenied
"""
from __future__ import annotations

from typing import Any


class StockroomError(Exception):
    """Base class for all domain errors."""

    default_code: str = "stockroom_error"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(StockroomError):
    """Caller input failed a required-field or type check before reaching the store."""

    default_code = "validation_error"
    status_code = 422


class NotFound(StockroomError):
    default_code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": str(entity_id)},
        )


class ConstraintViolation(StockroomError):
    """A unique key collided or a referenced row does not exist."""

    default_code = "constraint_violation"
    status_code = 409


class RestrictedDelete(StockroomError):
    """Deletion blocked by a dependent row."""

    default_code = "restricted_delete"
    status_code = 409


class PartialFailure(StockroomError):
    """A multi-step write was interrupted and could not be rolled back."""

    default_code = "partial_failure"
    status_code = 500


class AuthenticationRequired(StockroomError):
    default_code = "unauthorized"
    status_code = 401


class AccessDenied(StockroomError):
    default_code = "forbidden"
    status_code = 403


__all__ = [
    "StockroomError",
    "ValidationError",
    "NotFound",
    "ConstraintViolation",
    "RestrictedDelete",
    "PartialFailure",
    "AuthenticationRequired",
    "AccessDenied",
]
