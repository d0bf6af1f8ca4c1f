"""API endpoints for IT managers: tenant assignments and agent accounts."""

import uuid

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_audit_recorder, get_db_session, require
from app.models.audit import AuditEventType
from app.schemas.tenant import AssignmentCreate, AssignmentResponse
from app.schemas.user import (
    AgentStatusResponse,
    AgentStatusUpdate,
    PasswordResetRequest,
)
from app.services.audit import AuditRecorder, request_meta_from
from app.services.auth_context import AuthContext
from app.services.policy import (
    Operation,
    require_agent_management,
    require_tenant_management,
)
from app.services.tenants import (
    create_assignment,
    delete_assignment,
    get_tenant,
    list_assignments,
)
from app.services.users import reset_user_password, set_user_active

router = APIRouter()


def _organization_metadata(organization_id, **extra) -> dict:
    if organization_id is not None:
        extra["organizationId"] = organization_id
    return extra


@router.get(
    "/tenants/{tenant_id}/assignments",
    response_model=list[AssignmentResponse],
    summary="List a tenant's assignments",
)
async def get_assignments(
    tenant_id: uuid.UUID,
    ctx: AuthContext = Depends(require(Operation.MANAGE_TENANT_ASSIGNMENTS)),
    db: AsyncSession = Depends(get_db_session),
) -> list[AssignmentResponse]:
    await require_tenant_management(ctx, tenant_id, db)
    return [AssignmentResponse.model_validate(a) for a in await list_assignments(db, tenant_id)]


@router.post(
    "/tenants/{tenant_id}/assignments",
    status_code=status.HTTP_201_CREATED,
    response_model=AssignmentResponse,
    summary="Assign a user to a tenant",
)
async def add_assignment(
    tenant_id: uuid.UUID,
    payload: AssignmentCreate,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.MANAGE_TENANT_ASSIGNMENTS)),
    db: AsyncSession = Depends(get_db_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AssignmentResponse:
    await require_tenant_management(ctx, tenant_id, db)
    await require_agent_management(ctx, payload.user_id, db)
    tenant = await get_tenant(db, tenant_id)

    assignment = await create_assignment(db, tenant.id, payload.user_id, payload.category)
    await recorder.record(
        AuditEventType.TENANT_USER_ASSIGNED,
        "tenant",
        tenant.id,
        ctx.user_id,
        ctx.email,
        f"User {payload.user_id} assigned to tenant {tenant.slug}",
        _organization_metadata(
            tenant.organization_id, userId=payload.user_id, category=payload.category
        ),
        request_meta_from(request),
    )
    return AssignmentResponse.model_validate(assignment)


@router.delete(
    "/tenants/{tenant_id}/assignments/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a tenant assignment",
)
async def remove_assignment(
    tenant_id: uuid.UUID,
    assignment_id: uuid.UUID,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.MANAGE_TENANT_ASSIGNMENTS)),
    db: AsyncSession = Depends(get_db_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> None:
    await require_tenant_management(ctx, tenant_id, db)
    tenant = await get_tenant(db, tenant_id)
    assignment = await delete_assignment(db, tenant.id, assignment_id)
    await recorder.record(
        AuditEventType.TENANT_USER_UNASSIGNED,
        "tenant",
        tenant.id,
        ctx.user_id,
        ctx.email,
        f"User {assignment.user_id} unassigned from tenant {tenant.slug}",
        _organization_metadata(
            tenant.organization_id, userId=assignment.user_id, category=assignment.category
        ),
        request_meta_from(request),
    )


@router.put(
    "/agents/{agent_id}/disable",
    response_model=AgentStatusResponse,
    summary="Disable or re-enable an agent account",
)
async def disable_agent(
    agent_id: uuid.UUID,
    payload: AgentStatusUpdate,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.MANAGE_AGENTS)),
    db: AsyncSession = Depends(get_db_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AgentStatusResponse:
    await require_agent_management(ctx, agent_id, db)
    agent = await set_user_active(db, agent_id, not payload.disabled)
    await recorder.record(
        AuditEventType.USER_DEACTIVATED if payload.disabled else AuditEventType.USER_ACTIVATED,
        "user",
        agent.id,
        ctx.user_id,
        ctx.email,
        f"Agent {agent.email} {'disabled' if payload.disabled else 'enabled'}",
        _organization_metadata(agent.organization_id),
        request_meta_from(request),
    )
    return AgentStatusResponse.model_validate(agent)


@router.post(
    "/agents/{agent_id}/reset-password",
    response_model=AgentStatusResponse,
    summary="Set a new password for an agent",
)
async def reset_agent_password(
    agent_id: uuid.UUID,
    payload: PasswordResetRequest,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.MANAGE_AGENTS)),
    db: AsyncSession = Depends(get_db_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AgentStatusResponse:
    await require_agent_management(ctx, agent_id, db)
    agent = await reset_user_password(db, agent_id, payload.new_password)
    await recorder.record(
        AuditEventType.PASSWORD_RESET,
        "user",
        agent.id,
        ctx.user_id,
        ctx.email,
        f"Password reset for agent {agent.email}",
        _organization_metadata(agent.organization_id),
        request_meta_from(request),
    )
    return AgentStatusResponse.model_validate(agent)
