"""Authorization checks that run before every entity store call.

The policy is independent of storage: it only sees the caller, the entity
name and the action, so a stricter policy can replace the default one
without touching the schema.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

from .errors import AuthenticationRequired


class Action(str, enum.Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    username: str


class AccessPolicy:
    def authorize(self, principal: Principal | None, entity: str, action: Action) -> None:
        """Raise a :class:`~stockroom.errors.StockroomError` when access is refused."""

        raise NotImplementedError


class AuthenticatedPolicy(AccessPolicy):
    """Any authenticated caller may do anything; anonymous callers get nothing."""

    def authorize(self, principal: Principal | None, entity: str, action: Action) -> None:
        if principal is None:
            raise AuthenticationRequired(
                "Authentication required",
                details={"entity": entity, "action": action.value},
            )


__all__ = ["Action", "Principal", "AccessPolicy", "AuthenticatedPolicy"]
