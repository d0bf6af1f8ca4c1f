"""Resolution of the acting principal from a bearer token."""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import RoleName, User
from app.utils.jwt_manager import InvalidTokenError, verify_session_token
from app.utils.logging_config import logger

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    """The principal of one request. Built per request, never persisted."""

    user_id: uuid.UUID
    email: str
    roles: frozenset[RoleName]
    organization_id: Optional[uuid.UUID] = None
    is_global_admin: bool = False

    def has_role(self, role: RoleName) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[RoleName]) -> bool:
        return not self.roles.isdisjoint(roles)

    @classmethod
    def from_user(cls, user: User) -> "AuthContext":
        roles = user.role_names
        return cls(
            user_id=user.id,
            email=user.email,
            roles=roles,
            organization_id=user.organization_id,
            is_global_admin=RoleName.GLOBAL_ADMIN in roles,
        )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :].strip()
    return token or None


async def get_user_with_roles(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


async def resolve_auth_context(
    authorization: Optional[str], db: AsyncSession
) -> Optional[AuthContext]:
    """
    Resolves the request principal from an `Authorization` header value.

    Returns None when the header is missing or not a Bearer header, when the
    token does not verify, or when the user is missing or inactive. Roles are
    read from the user's current grants, not from the token. Never raises.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return None

    try:
        claims = verify_session_token(token)
    except InvalidTokenError as e:
        logger.debug(f"Rejected session token: {e}")
        return None

    try:
        user = await get_user_with_roles(db, claims.user_id)
    except SQLAlchemyError as e:
        logger.warning(f"User lookup failed while resolving auth context: {e}")
        return None

    if user is None or not user.is_active:
        return None

    return AuthContext.from_user(user)
