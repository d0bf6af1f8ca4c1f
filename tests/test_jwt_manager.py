import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.models.user import RoleName
from app.settings import settings
from app.utils.jwt_manager import (
    InvalidTokenError,
    create_access_token,
    create_refresh_token,
    sign_public_token,
    verify_public_token,
    verify_refresh_token,
    verify_session_token,
)


def forge_access_token(
    secret: str = settings.JWT_SECRET,
    sub: str = None,
    lifetime: timedelta = timedelta(hours=1),
) -> str:
    issued_at = datetime.now(timezone.utc)
    if lifetime < timedelta(0):
        issued_at += lifetime * 2
    return jwt.encode(
        {
            "sub": sub or str(uuid.uuid4()),
            "email": "forged@example.com",
            "roles": [],
            "type": "access",
            "iat": issued_at,
            "exp": datetime.now(timezone.utc) + lifetime,
        },
        secret,
        algorithm="HS256",
    )


def test_access_token_roundtrip_carries_claims():
    user_id = uuid.uuid4()
    token = create_access_token(
        user_id, "agent@example.com", [RoleName.AGENT, RoleName.END_USER]
    )

    claims = verify_session_token(token)

    assert claims.user_id == user_id
    assert claims.email == "agent@example.com"
    assert claims.roles == ("AGENT", "END_USER")


def test_expired_access_token_is_rejected():
    token = forge_access_token(lifetime=-timedelta(days=1))

    with pytest.raises(InvalidTokenError, match="expired"):
        verify_session_token(token)


def test_token_signed_with_other_secret_is_rejected():
    token = forge_access_token(secret="some-other-secret-that-is-long-enough-32")

    with pytest.raises(InvalidTokenError):
        verify_session_token(token)


def test_malformed_subject_is_rejected():
    token = forge_access_token(sub="not-a-uuid")

    with pytest.raises(InvalidTokenError, match="subject"):
        verify_session_token(token)


def test_refresh_token_is_not_a_session_token():
    refresh = create_refresh_token(uuid.uuid4(), "user@example.com")

    with pytest.raises(InvalidTokenError):
        verify_session_token(refresh)
    assert verify_refresh_token(refresh).email == "user@example.com"


def test_public_token_is_not_a_session_token():
    issued = sign_public_token()

    with pytest.raises(InvalidTokenError):
        verify_session_token(issued.token)


def test_sign_public_token_without_id_mints_a_fresh_one():
    first = sign_public_token()
    second = sign_public_token()

    assert first.public_id != second.public_id
    assert verify_public_token(first.token).public_id == first.public_id


def test_sign_public_token_keeps_supplied_id_and_tenant():
    tenant_id = str(uuid.uuid4())
    issued = sign_public_token(public_id="session-42", tenant_id=tenant_id)

    claims = verify_public_token(issued.token)

    assert issued.public_id == "session-42"
    assert claims.public_id == "session-42"
    assert claims.tenant_id == tenant_id


def test_garbage_token_is_rejected():
    with pytest.raises(InvalidTokenError):
        verify_public_token("definitely.not.a-jwt")
