"""Pydantic schemas for tenants and tenant assignments."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TenantResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    organization_id: Optional[uuid.UUID] = None
    requires_login: bool
    categories: List[str] = Field(default_factory=list)

    @classmethod
    def from_tenant(cls, tenant) -> "TenantResponse":
        return cls(
            id=tenant.id,
            name=tenant.name,
            slug=tenant.slug,
            organization_id=tenant.organization_id,
            requires_login=tenant.requires_login,
            categories=sorted(c.category for c in tenant.categories),
        )


class AssignmentCreate(BaseModel):
    user_id: uuid.UUID
    category: Optional[str] = Field(None, max_length=100)


class AssignmentResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    category: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
