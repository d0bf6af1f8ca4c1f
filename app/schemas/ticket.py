"""Pydantic schemas for tickets."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.ticket import TicketPriority, TicketStatus
from app.models.user import RoleName


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    tenant_id: Optional[uuid.UUID] = None
    assignee_id: Optional[uuid.UUID] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class TenantTicketCreate(BaseModel):
    """Submission through a tenant portal, possibly without an account."""

    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    requester_email: Optional[str] = Field(None, max_length=255)
    requester_name: Optional[str] = Field(None, max_length=200)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class TicketUpdate(BaseModel):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assignee_id: Optional[uuid.UUID] = None


class AssignTicketRequest(BaseModel):
    agent_id: uuid.UUID


class EscalateTicketRequest(BaseModel):
    """Exactly one of `escalated_to_user_id` or `escalated_to_role` must be set."""

    escalated_to_user_id: Optional[uuid.UUID] = None
    escalated_to_role: Optional[RoleName] = None
    escalation_note: Optional[str] = Field(None, max_length=2000)


class TicketResponse(BaseModel):
    id: uuid.UUID
    ticket_number: str
    subject: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    category: Optional[str] = None
    tenant_id: Optional[uuid.UUID] = None
    organization_id: Optional[uuid.UUID] = None
    requester_id: Optional[uuid.UUID] = None
    requester_email: Optional[str] = None
    requester_name: Optional[str] = None
    assignee_id: Optional[uuid.UUID] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    escalated_to_role: Optional[RoleName] = None
    escalated_to_user_id: Optional[uuid.UUID] = None
    escalated_by_id: Optional[uuid.UUID] = None
    escalated_at: Optional[datetime] = None
    escalation_note: Optional[str] = None

    model_config = {"from_attributes": True}


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]


class PublicTicketCreated(BaseModel):
    """A portal submission and, for anonymous submitters, their public token."""

    ticket: TicketResponse
    public_token: Optional[str] = None


class EscalationCandidate(BaseModel):
    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = {"from_attributes": True}


class EscalationOptions(BaseModel):
    available_roles: List[RoleName]
    available_users: List[EscalationCandidate]
