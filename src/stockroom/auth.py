"""User accounts and signed API tokens."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadData, URLSafeSerializer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from . import crud
from .config import Settings
from .errors import AuthenticationRequired, ValidationError
from .models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: int
    expires_at: int

    @property
    def expires_in(self) -> int:
        return self.expires_at - self.issued_at


class TokenSigner:
    """Issue and verify bearer tokens of the form ``{"u": user_id, "iat", "exp"}``."""

    def __init__(self, settings: Settings) -> None:
        self._serializer = URLSafeSerializer(settings.secret_key, salt=settings.api_token_salt)
        self._default_age = settings.api_token_default_age
        self._max_age = settings.api_token_max_age

    def lifetime(self, requested: Any) -> int:
        if requested is None or isinstance(requested, bool):
            return self._default_age
        try:
            candidate = int(requested)
        except (TypeError, ValueError):
            return self._default_age
        if candidate <= 0:
            return self._default_age
        return min(candidate, self._max_age)

    def issue(self, user_id: uuid.UUID, lifetime: int | None = None) -> IssuedToken:
        issued_at = int(time.time())
        expires_at = issued_at + self.lifetime(lifetime)
        payload = {"u": str(user_id), "iat": issued_at, "exp": expires_at}
        return IssuedToken(self._serializer.dumps(payload), issued_at, expires_at)

    def verify(self, token: str) -> uuid.UUID | None:
        """Return the user id carried by ``token`` or ``None`` if it is invalid or expired."""

        try:
            payload = self._serializer.loads(token)
        except BadData:
            return None
        if not isinstance(payload, dict):
            return None
        user_value = payload.get("u")
        exp_value = payload.get("exp")
        if not user_value or exp_value is None:
            return None
        try:
            expires_at = int(exp_value)
            user_id = uuid.UUID(str(user_value))
        except (TypeError, ValueError):
            return None
        if time.time() > expires_at:
            return None
        return user_id


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    stmt = select(User).where(User.username == username)
    return (await session.execute(stmt)).scalar_one_or_none()


async def create_user(session: AsyncSession, username: str, password: str) -> User:
    username = username.strip()
    if not username:
        raise ValidationError("Username is required", details={"field": "username"})
    if not password:
        raise ValidationError("Password is required", details={"field": "password"})
    return await crud.create_entity(
        session,
        User,
        {"username": username, "password_hash": generate_password_hash(password)},
    )


async def authenticate(session: AsyncSession, username: str, password: str) -> User:
    user = await get_user_by_username(session, username.strip())
    if user is None or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login attempt for %r", username)
        raise AuthenticationRequired("Invalid username or password")
    return user


async def resolve_token(session: AsyncSession, signer: TokenSigner, token: str) -> User | None:
    user_id = signer.verify(token)
    if user_id is None:
        return None
    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


__all__ = [
    "IssuedToken",
    "TokenSigner",
    "get_user_by_username",
    "create_user",
    "authenticate",
    "resolve_token",
]
