"""FastAPI dependencies: settings, caller identity and access checks."""
from __future__ import annotations

import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import auth
from .config import Settings, get_settings
from .database import get_session
from .policy import AccessPolicy, Action, AuthenticatedPolicy, Principal

logger = logging.getLogger(__name__)


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def provide_policy(request: Request) -> AccessPolicy:
    return getattr(request.app.state, "access_policy", None) or AuthenticatedPolicy()


def provide_token_signer(settings: Settings = Depends(provide_settings)) -> auth.TokenSigner:
    return auth.TokenSigner(settings)


def extract_api_token(request: Request) -> str | None:
    """Read a token from ``Authorization: Bearer``, ``X-API-Token`` or ``?api_token=``."""

    auth_header = request.headers.get("Authorization")
    if isinstance(auth_header, str):
        scheme, _, token_value = auth_header.partition(" ")
        if scheme.lower() == "bearer" and token_value.strip():
            return token_value.strip()
    header_token = request.headers.get("X-API-Token")
    if isinstance(header_token, str) and header_token.strip():
        return header_token.strip()
    query_token = request.query_params.get("api_token")
    if isinstance(query_token, str) and query_token.strip():
        return query_token.strip()
    return None


async def get_principal(
    request: Request,
    session: AsyncSession = Depends(get_session),
    signer: auth.TokenSigner = Depends(provide_token_signer),
) -> Principal | None:
    token = extract_api_token(request)
    if token is None:
        return None
    user = await auth.resolve_token(session, signer, token)
    if user is None:
        logger.info("Rejected invalid or expired API token on %s", request.url.path)
        return None
    return Principal(user_id=user.id, username=user.username)


def require(entity: str, action: Action):
    """Build a dependency that authorizes ``action`` on ``entity`` and returns the caller."""

    async def authorize(
        principal: Principal | None = Depends(get_principal),
        policy: AccessPolicy = Depends(provide_policy),
    ) -> Principal | None:
        policy.authorize(principal, entity, action)
        return principal

    return authorize


__all__ = [
    "provide_settings",
    "provide_policy",
    "provide_token_signer",
    "extract_api_token",
    "get_principal",
    "require",
]
