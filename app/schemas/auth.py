"""Pydantic schemas for authentication and public tokens."""

import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.user import RoleName


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    organization_id: Optional[uuid.UUID] = None
    roles: List[RoleName] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            organization_id=user.organization_id,
            roles=sorted(user.role_names, key=lambda r: r.value),
        )


class TokenResponse(BaseModel):
    """Session tokens plus the number of public tickets merged into the account."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
    merged_tickets: int = 0


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PublicTokenRequest(BaseModel):
    tenant_id: Optional[uuid.UUID] = None


class PublicTokenResponse(BaseModel):
    token: str
    public_id: str
