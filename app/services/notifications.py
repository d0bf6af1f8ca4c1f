"""
In-app notifications.

Requests enqueue a Celery task; the worker persists the notification and pushes
a realtime `notification:new` event when the user's preferences allow it.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.db import get_db_sync
from app.config.redis import get_redis_sync
from app.models.notification import (
    Notification,
    NotificationPreference,
    NotificationType,
)
from app.services.realtime import encode_event, user_channel
from app.utils.logging_config import setup_logging
from app.worker import celery_app

logger = setup_logging()

_TITLES = {
    NotificationType.TICKET_CREATED: "New Ticket",
    NotificationType.TICKET_UPDATED: "Ticket Updated",
    NotificationType.TICKET_ASSIGNED: "Ticket Assigned",
    NotificationType.TICKET_COMMENT: "New Comment",
    NotificationType.ESCALATION: "Ticket Escalated",
}


@celery_app.task(
    name="deliver_notification",
    autoretry_for=(ConnectionError,),
    retry_kwargs={"max_retries": 3},
    retry_backoff=True,
)
def deliver_notification(user_id: str, kind: str, payload: dict):
    """
    Celery task that stores a notification and publishes it to the user's
    realtime channel.

    Args:
        user_id: The recipient.
        kind: A NotificationType value.
        payload: Must contain `message`; may contain `title`, `link` and any
            extra metadata (ticket id, ticket number, changes).
    """
    notification_type = NotificationType(kind)
    db_session_gen = get_db_sync()
    db = next(db_session_gen)
    try:
        notification = Notification(
            user_id=uuid.UUID(user_id),
            type=notification_type,
            title=payload.get("title") or _TITLES[notification_type],
            message=payload["message"],
            link=payload.get("link"),
            payload=payload,
        )
        db.add(notification)
        db.commit()

        preferences = db.scalar(
            select(NotificationPreference).where(
                NotificationPreference.user_id == notification.user_id
            )
        )
        if preferences is not None and not preferences.allows(notification_type):
            logger.info(f"Realtime push disabled for {kind} by user {user_id}")
            return

        get_redis_sync().publish(
            user_channel(user_id),
            encode_event(
                "notification:new",
                {
                    "notification": {
                        "id": str(notification.id),
                        "type": notification_type.value,
                        "title": notification.title,
                        "message": notification.message,
                        "link": notification.link,
                        "createdAt": notification.created_at.isoformat(),
                    }
                },
            ),
        )
    finally:
        db.close()


class NotificationSink:
    """Enqueues notifications. Never blocks on delivery."""

    def notify(self, user_id: uuid.UUID, kind: NotificationType, payload: dict[str, Any]) -> None:
        deliver_notification.delay(  # pyright: ignore[reportFunctionMemberAccess]
            user_id=str(user_id), kind=kind.value, payload=payload
        )


notification_sink = NotificationSink()


def notify_ticket_assigned(
    sink: NotificationSink, ticket_id: uuid.UUID, ticket_number: str, assignee_id: uuid.UUID
) -> None:
    sink.notify(
        assignee_id,
        NotificationType.TICKET_ASSIGNED,
        {
            "message": f"Ticket {ticket_number} has been assigned to you.",
            "link": f"/tickets/{ticket_id}",
            "ticketId": str(ticket_id),
            "ticketNumber": ticket_number,
        },
    )


def notify_ticket_updated(
    sink: NotificationSink,
    ticket_id: uuid.UUID,
    ticket_number: str,
    changes: dict[str, Any],
    user_ids: list[uuid.UUID],
) -> None:
    for user_id in user_ids:
        sink.notify(
            user_id,
            NotificationType.TICKET_UPDATED,
            {
                "message": f"Ticket {ticket_number} has been updated.",
                "link": f"/tickets/{ticket_id}",
                "ticketId": str(ticket_id),
                "ticketNumber": ticket_number,
                "changes": changes,
            },
        )


def notify_ticket_escalated(
    sink: NotificationSink,
    ticket_id: uuid.UUID,
    ticket_number: str,
    user_ids: list[uuid.UUID],
    note: Optional[str] = None,
) -> None:
    for user_id in user_ids:
        sink.notify(
            user_id,
            NotificationType.ESCALATION,
            {
                "message": f"Ticket {ticket_number} has been escalated to you.",
                "link": f"/tickets/{ticket_id}",
                "ticketId": str(ticket_id),
                "ticketNumber": ticket_number,
                "note": note,
            },
        )


async def list_notifications(
    db: AsyncSession, user_id: uuid.UUID, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def mark_as_read(
    db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Notification]:
    """Marks one of the user's notifications read. None if it is not theirs."""
    notification = await db.scalar(
        select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
    )
    if notification is None:
        return None
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()
    return notification


PREFERENCE_FIELDS = (
    "ticket_created",
    "ticket_updated",
    "ticket_assigned",
    "ticket_comment",
    "escalation",
)


async def get_notification_preferences(
    db: AsyncSession, user_id: uuid.UUID
) -> NotificationPreference:
    """The user's preferences, created with every type enabled on first read."""
    preferences = await db.scalar(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    if preferences is None:
        preferences = NotificationPreference(
            user_id=user_id, **{field: True for field in PREFERENCE_FIELDS}
        )
        try:
            async with db.begin_nested():
                db.add(preferences)
                await db.flush()
        except IntegrityError:
            # created by a concurrent first read
            preferences = await db.scalar(
                select(NotificationPreference).where(NotificationPreference.user_id == user_id)
            )
        await db.commit()
    return preferences


async def update_notification_preferences(
    db: AsyncSession, user_id: uuid.UUID, changes: dict[str, bool]
) -> NotificationPreference:
    preferences = await get_notification_preferences(db, user_id)
    for field in PREFERENCE_FIELDS:
        if changes.get(field) is not None:
            setattr(preferences, field, changes[field])
    await db.commit()
    return preferences
