"""Dependencies for API endpoints."""

from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.db import SessionLocal
from app.services.audit import AuditRecorder, audit_recorder
from app.services.auth_context import AuthContext, resolve_auth_context
from app.services.notifications import NotificationSink, notification_sink
from app.services.policy import Operation, require_auth, require_operation
from app.services.realtime import RealtimeBroadcaster, realtime_broadcaster
from app.utils.jwt_manager import InvalidTokenError, PublicClaims, verify_public_token

PUBLIC_TOKEN_HEADER = "x-public-token"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency to get a DB session. Rolls back on database errors.
    """
    async with SessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise


async def get_auth_context(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[AuthContext]:
    """The request principal, or None for anonymous or invalid credentials."""
    return await resolve_auth_context(authorization, db)


async def get_current_context(
    ctx: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    return require_auth(ctx)


def require(operation: Operation):
    """
    Dependency factory gating an endpoint on the roles OPERATION_ROLES accepts
    for `operation`.
    """

    async def dependency(
        ctx: Optional[AuthContext] = Depends(get_auth_context),
    ) -> AuthContext:
        return require_operation(ctx, operation)

    return dependency


async def get_public_claims(
    x_public_token: Optional[str] = Header(None, alias=PUBLIC_TOKEN_HEADER),
) -> Optional[PublicClaims]:
    """Claims of the `x-public-token` header; None when absent or invalid."""
    if not x_public_token:
        return None
    try:
        return verify_public_token(x_public_token)
    except InvalidTokenError:
        return None


async def require_public_claims(
    claims: Optional[PublicClaims] = Depends(get_public_claims),
) -> PublicClaims:
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid public token",
        )
    return claims


def get_notifier() -> NotificationSink:
    return notification_sink


def get_broadcaster() -> RealtimeBroadcaster:
    return realtime_broadcaster


def get_audit_recorder() -> AuditRecorder:
    return audit_recorder
