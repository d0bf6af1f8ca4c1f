import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]


class NotificationPreferenceResponse(BaseModel):
    ticket_created: bool
    ticket_updated: bool
    ticket_assigned: bool
    ticket_comment: bool
    escalation: bool

    model_config = {"from_attributes": True}


class NotificationPreferenceUpdate(BaseModel):
    """Fields left out keep their current value."""

    ticket_created: Optional[bool] = None
    ticket_updated: Optional[bool] = None
    ticket_assigned: Optional[bool] = None
    ticket_comment: Optional[bool] = None
    escalation: Optional[bool] = None
