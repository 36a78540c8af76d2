from __future__ import annotations

import uuid

import pytest

from stockroom import auth
from stockroom.config import Settings
from stockroom.errors import AuthenticationRequired, ConstraintViolation, ValidationError


@pytest.fixture()
def signer() -> auth.TokenSigner:
    return auth.TokenSigner(Settings(secret_key="unit-secret", api_token_default_age=60, api_token_max_age=600))


def test_issued_token_round_trips(signer: auth.TokenSigner) -> None:
    user_id = uuid.uuid4()

    issued = signer.issue(user_id)

    assert issued.expires_in == 60
    assert signer.verify(issued.token) == user_id


@pytest.mark.parametrize(
    ("requested", "expected"),
    [(None, 60), (True, 60), ("abc", 60), (0, 60), (-5, 60), ("120", 120), (10_000, 600)],
)
def test_lifetime_is_bounded(signer: auth.TokenSigner, requested, expected: int) -> None:
    assert signer.lifetime(requested) == expected


def test_expired_token_is_rejected(signer: auth.TokenSigner, monkeypatch) -> None:
    issued = signer.issue(uuid.uuid4(), 30)

    monkeypatch.setattr(auth.time, "time", lambda: issued.expires_at + 1)

    assert signer.verify(issued.token) is None


def test_foreign_or_tampered_tokens_are_rejected(signer: auth.TokenSigner) -> None:
    other = auth.TokenSigner(Settings(secret_key="someone-else"))
    foreign = other.issue(uuid.uuid4()).token
    genuine = signer.issue(uuid.uuid4()).token

    assert signer.verify(foreign) is None
    assert signer.verify("A" + genuine) is None
    assert signer.verify("not-a-token") is None


async def test_authenticate_checks_password(session) -> None:
    created = await auth.create_user(session, " clerk ", "s3cret")
    await session.commit()

    assert created.username == "clerk"
    assert created.password_hash != "s3cret"
    user = await auth.authenticate(session, "clerk", "s3cret")
    assert user.id == created.id
    with pytest.raises(AuthenticationRequired):
        await auth.authenticate(session, "clerk", "wrong")
    with pytest.raises(AuthenticationRequired):
        await auth.authenticate(session, "nobody", "s3cret")


async def test_inactive_user_cannot_sign_in(session, signer: auth.TokenSigner) -> None:
    created = await auth.create_user(session, "temp", "pw")
    token = signer.issue(created.id).token
    created.is_active = False
    await session.commit()

    with pytest.raises(AuthenticationRequired):
        await auth.authenticate(session, "temp", "pw")
    assert await auth.resolve_token(session, signer, token) is None


async def test_create_user_validation(session) -> None:
    with pytest.raises(ValidationError):
        await auth.create_user(session, "  ", "pw")
    with pytest.raises(ValidationError):
        await auth.create_user(session, "someone", "")

    await auth.create_user(session, "twice", "pw")
    with pytest.raises(ConstraintViolation):
        await auth.create_user(session, "twice", "pw")
