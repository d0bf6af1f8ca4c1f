import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.auth import UserResponse


class AgentStatusUpdate(BaseModel):
    disabled: bool


class PasswordResetRequest(BaseModel):
    new_password: str = Field(..., min_length=8)


class AgentStatusResponse(BaseModel):
    id: uuid.UUID
    email: str
    is_active: bool

    model_config = {"from_attributes": True}


class TenantUserListResponse(BaseModel):
    users: List[UserResponse]
    tenant_id: Optional[uuid.UUID] = None
