"""API endpoints for login, registration and session tokens."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_audit_recorder,
    get_current_context,
    get_db_session,
    get_public_claims,
)
from app.exceptions import AuthenticationError
from app.models.audit import AuditEventType
from app.models.user import User
from app.schemas.auth import (
    AccessTokenResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.services.audit import AuditRecorder, request_meta_from
from app.services.auth_context import AuthContext, get_user_with_roles
from app.services.tickets import merge_public_token_tickets
from app.services.users import (
    AuthResult,
    authenticate_user,
    register_user,
    require_user,
)
from app.utils.jwt_manager import (
    InvalidTokenError,
    PublicClaims,
    create_access_token,
    verify_refresh_token,
)
from app.utils.logging_config import logger

router = APIRouter()


def _organization_metadata(user: User) -> dict:
    if user.organization_id is None:
        return {}
    return {"organizationId": user.organization_id}


async def _merge_public_tickets(
    db: AsyncSession, claims: Optional[PublicClaims], user: User
) -> int:
    """Tickets filed under the caller's public token now belong to the account."""
    if claims is None:
        return 0
    try:
        return await merge_public_token_tickets(db, claims.public_id, user.id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to merge public tickets for {user.email}: {e}")
        return 0


def _token_response(result: AuthResult, merged: int) -> TokenResponse:
    return TokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserResponse.from_user(result.user),
        merged_tickets=merged,
    )


@router.post("/login", response_model=TokenResponse, summary="Log in with email and password")
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    claims: Optional[PublicClaims] = Depends(get_public_claims),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TokenResponse:
    meta = request_meta_from(request)
    try:
        result = await authenticate_user(db, payload.email, payload.password)
    except AuthenticationError as e:
        await recorder.record(
            AuditEventType.LOGIN_FAILED,
            "user",
            None,
            None,
            payload.email.lower(),
            f"Failed login for {payload.email.lower()}: {e.message}",
            request_meta=meta,
        )
        raise

    merged = await _merge_public_tickets(db, claims, result.user)
    await recorder.record(
        AuditEventType.LOGIN,
        "user",
        result.user.id,
        result.user.id,
        result.user.email,
        f"User {result.user.email} logged in",
        {**_organization_metadata(result.user), "mergedTickets": merged},
        meta,
    )
    return _token_response(result, merged)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=TokenResponse,
    summary="Create an end-user account",
)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    claims: Optional[PublicClaims] = Depends(get_public_claims),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TokenResponse:
    result = await register_user(
        db,
        payload.email,
        payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    merged = await _merge_public_tickets(db, claims, result.user)
    await recorder.record(
        AuditEventType.USER_CREATED,
        "user",
        result.user.id,
        result.user.id,
        result.user.email,
        f"User {result.user.email} registered",
        {"mergedTickets": merged},
        request_meta_from(request),
    )
    return _token_response(result, merged)


@router.post("/refresh", response_model=AccessTokenResponse, summary="Exchange a refresh token")
async def refresh(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AccessTokenResponse:
    try:
        claims = verify_refresh_token(payload.refresh_token)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token"
        ) from e

    user = await get_user_with_roles(db, claims.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token"
        )
    return AccessTokenResponse(
        access_token=create_access_token(user.id, user.email, user.role_names)
    )


@router.get("/me", response_model=UserResponse, summary="The authenticated user")
async def me(
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return UserResponse.from_user(await require_user(db, ctx.user_id))
