"""Signing and verification of session, refresh and public (anonymous) tokens."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from app.settings import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
PUBLIC_TOKEN_TYPE = "public"


class InvalidTokenError(Exception):
    """Raised for expired, tampered or malformed tokens."""


@dataclass(frozen=True)
class SessionClaims:
    user_id: uuid.UUID
    email: str
    roles: tuple[str, ...]


@dataclass(frozen=True)
class RefreshClaims:
    user_id: uuid.UUID
    email: str


@dataclass(frozen=True)
class PublicClaims:
    public_id: str
    tenant_id: Optional[str] = None


@dataclass(frozen=True)
class PublicToken:
    token: str
    public_id: str


def _encode(claims: dict, secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {"iat": now, "exp": now + lifetime, **claims}
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidTokenError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}") from e

    if payload.get("type") != token_type:
        raise InvalidTokenError(f"Expected a {token_type} token")
    return payload


def _subject(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as e:
        raise InvalidTokenError("Invalid token: malformed subject") from e


def create_access_token(user_id: uuid.UUID, email: str, roles: Iterable[str]) -> str:
    """
    Creates a session (access) token for an authenticated user.

    Args:
        user_id: The user's id, stored as the `sub` claim.
        email: The user's email.
        roles: Role names held at sign-in time. Informational only; the auth
            context always reloads roles from the database.

    Returns:
        str: The encoded JWT.
    """
    return _encode(
        {
            "sub": str(user_id),
            "email": email,
            "roles": sorted(str(getattr(r, "value", r)) for r in roles),
            "type": ACCESS_TOKEN_TYPE,
        },
        settings.JWT_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def verify_session_token(token: str) -> SessionClaims:
    payload = _decode(token, settings.JWT_SECRET, ACCESS_TOKEN_TYPE)
    email = payload.get("email")
    roles = payload.get("roles")
    if not isinstance(email, str) or not isinstance(roles, list):
        raise InvalidTokenError("Invalid token: missing required claims")
    return SessionClaims(
        user_id=_subject(payload), email=email, roles=tuple(str(r) for r in roles)
    )


def create_refresh_token(user_id: uuid.UUID, email: str) -> str:
    return _encode(
        {"sub": str(user_id), "email": email, "type": REFRESH_TOKEN_TYPE},
        settings.JWT_REFRESH_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def verify_refresh_token(token: str) -> RefreshClaims:
    payload = _decode(token, settings.JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)
    email = payload.get("email")
    if not isinstance(email, str):
        raise InvalidTokenError("Invalid token: missing required claims")
    return RefreshClaims(user_id=_subject(payload), email=email)


def sign_public_token(
    public_id: Optional[str] = None, tenant_id: Optional[str] = None
) -> PublicToken:
    """
    Issues a token for an anonymous session. Each call without `public_id`
    yields a fresh identifier.
    """
    public_id = public_id or str(uuid.uuid4())
    claims = {"public_id": public_id, "type": PUBLIC_TOKEN_TYPE}
    if tenant_id:
        claims["tenant_id"] = str(tenant_id)
    token = _encode(
        claims,
        settings.PUBLIC_TOKEN_SECRET,
        timedelta(days=settings.PUBLIC_TOKEN_EXPIRE_DAYS),
    )
    return PublicToken(token=token, public_id=public_id)


def verify_public_token(token: str) -> PublicClaims:
    payload = _decode(token, settings.PUBLIC_TOKEN_SECRET, PUBLIC_TOKEN_TYPE)
    public_id = payload.get("public_id")
    if not isinstance(public_id, str) or not public_id:
        raise InvalidTokenError("Invalid token: missing public id")
    return PublicClaims(public_id=public_id, tenant_id=payload.get("tenant_id"))
