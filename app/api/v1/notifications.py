"""API endpoints for the caller's in-app notifications."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_context, get_db_session
from app.exceptions import NotFoundError
from app.schemas.notification import (
    NotificationListResponse,
    NotificationPreferenceResponse,
    NotificationPreferenceUpdate,
    NotificationResponse,
)
from app.services.auth_context import AuthContext
from app.services.notifications import (
    get_notification_preferences,
    list_notifications,
    mark_as_read,
    update_notification_preferences,
)

router = APIRouter()


@router.get("", response_model=NotificationListResponse, summary="List own notifications")
async def get_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationListResponse:
    notifications = await list_notifications(db, ctx.user_id, unread_only, limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications]
    )


@router.get(
    "/preferences",
    response_model=NotificationPreferenceResponse,
    summary="Get own notification preferences",
)
async def read_preferences(
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationPreferenceResponse:
    preferences = await get_notification_preferences(db, ctx.user_id)
    return NotificationPreferenceResponse.model_validate(preferences)


@router.put(
    "/preferences",
    response_model=NotificationPreferenceResponse,
    summary="Update own notification preferences",
)
async def write_preferences(
    payload: NotificationPreferenceUpdate,
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationPreferenceResponse:
    preferences = await update_notification_preferences(
        db, ctx.user_id, payload.model_dump(exclude_none=True)
    )
    return NotificationPreferenceResponse.model_validate(preferences)

@router.patch("/{notification_id}", response_model=NotificationResponse, summary="Mark a notification read")
async def update_notification(
    notification_id: uuid.UUID,
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationResponse:
    notification = await mark_as_read(db, notification_id, ctx.user_id)
    if notification is None:
        raise NotFoundError("Notification", notification_id)
    return NotificationResponse.model_validate(notification)
