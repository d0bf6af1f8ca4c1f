"""API endpoints for agents."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session, require
from app.schemas.auth import UserResponse
from app.schemas.user import TenantUserListResponse
from app.services.auth_context import AuthContext
from app.services.policy import Operation
from app.services.scoping import agent_visible_tenant_ids
from app.services.users import list_tenant_users

router = APIRouter()


@router.get("/users", response_model=TenantUserListResponse, summary="Users sharing a tenant with the agent")
async def get_tenant_users(
    tenant_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    ctx: AuthContext = Depends(require(Operation.LIST_TENANT_USERS)),
    db: AsyncSession = Depends(get_db_session),
) -> TenantUserListResponse:
    visible = await agent_visible_tenant_ids(db, ctx.user_id)
    users = await list_tenant_users(db, visible, tenant_id=tenant_id, search=search)
    return TenantUserListResponse(
        users=[UserResponse.from_user(u) for u in users], tenant_id=tenant_id
    )
