"""Pydantic schemas for audit logs and audit configuration."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.audit import AuditEventType


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    organization_id: Optional[uuid.UUID] = None
    event_type: AuditEventType
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    user_email: str
    description: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class AuditLogPage(BaseModel):
    logs: List[AuditLogResponse]
    pagination: Pagination


class AuditConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    events: Optional[List[AuditEventType]] = None
    retention_days: Optional[int] = Field(None, ge=1)


class AuditConfigResponse(BaseModel):
    organization_id: uuid.UUID
    enabled: bool
    events: List[str] = Field(default_factory=list)
    retention_days: Optional[int] = None

    model_config = {"from_attributes": True}
