"""Notification and notification preference models."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime
from sqlalchemy import Enum as EnumType
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class NotificationType(str, enum.Enum):
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_UPDATED = "TICKET_UPDATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_COMMENT = "TICKET_COMMENT"
    ESCALATION = "ESCALATION"


class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        EnumType(NotificationType, name="notification_type"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type='{self.type.value}')>"


class NotificationPreference(BaseModel):
    __tablename__ = "notification_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    ticket_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ticket_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ticket_assigned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ticket_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    escalation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def allows(self, kind: NotificationType) -> bool:
        return {
            NotificationType.TICKET_CREATED: self.ticket_created,
            NotificationType.TICKET_UPDATED: self.ticket_updated,
            NotificationType.TICKET_ASSIGNED: self.ticket_assigned,
            NotificationType.TICKET_COMMENT: self.ticket_comment,
            NotificationType.ESCALATION: self.escalation,
        }.get(kind, True)
