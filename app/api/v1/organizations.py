"""API endpoints for organization audit logs and audit configuration."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_audit_recorder, get_db_session, require
from app.models.audit import AuditEventType
from app.schemas.audit import (
    AuditConfigResponse,
    AuditConfigUpdate,
    AuditLogPage,
    AuditLogResponse,
    Pagination,
)
from app.services.audit import (
    AuditLogFilters,
    AuditRecorder,
    get_audit_config,
    get_audit_logs,
    request_meta_from,
    update_audit_config,
)
from app.services.auth_context import AuthContext
from app.services.policy import (
    Operation,
    require_organization_access,
    require_organization_management,
)
from app.settings import settings

router = APIRouter()


def _organization_of(ctx: AuthContext, organization_id: Optional[uuid.UUID]) -> uuid.UUID:
    """
    The organization a request targets: the caller's own unless a global admin
    names another one.
    """
    target = organization_id or ctx.organization_id
    if target is None:
        raise HTTPException(status_code=400, detail="Organization is required")
    require_organization_access(ctx, target)
    return target


async def _managed_organization(
    ctx: AuthContext, organization_id: Optional[uuid.UUID], db: AsyncSession
) -> uuid.UUID:
    target = organization_id or ctx.organization_id
    if target is None:
        raise HTTPException(status_code=400, detail="Organization is required")
    await require_organization_management(ctx, target, db)
    return target


@router.get("/audit", response_model=AuditLogPage, summary="Search audit logs")
async def list_audit_logs(
    organization_id: Optional[uuid.UUID] = None,
    event_type: Optional[AuditEventType] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.AUDIT_PAGE_SIZE, ge=1, le=200),
    ctx: AuthContext = Depends(require(Operation.VIEW_AUDIT_LOGS)),
    db: AsyncSession = Depends(get_db_session),
) -> AuditLogPage:
    filters = AuditLogFilters(
        organization_id=_organization_of(ctx, organization_id),
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    result = await get_audit_logs(db, filters)
    return AuditLogPage(
        logs=[AuditLogResponse.model_validate(log) for log in result["logs"]],
        pagination=Pagination(**result["pagination"]),
    )


@router.get("/audit/config", response_model=AuditConfigResponse, summary="Get audit configuration")
async def read_audit_config(
    organization_id: Optional[uuid.UUID] = None,
    ctx: AuthContext = Depends(require(Operation.CONFIGURE_AUDIT)),
    db: AsyncSession = Depends(get_db_session),
) -> AuditConfigResponse:
    target = await _managed_organization(ctx, organization_id, db)
    config = await get_audit_config(db, target)
    if config is None:
        return AuditConfigResponse(organization_id=target, enabled=False, events=[])
    return AuditConfigResponse.model_validate(config)


@router.put("/audit/config", response_model=AuditConfigResponse, summary="Update audit configuration")
async def write_audit_config(
    payload: AuditConfigUpdate,
    request: Request,
    organization_id: Optional[uuid.UUID] = None,
    ctx: AuthContext = Depends(require(Operation.CONFIGURE_AUDIT)),
    db: AsyncSession = Depends(get_db_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AuditConfigResponse:
    target = await _managed_organization(ctx, organization_id, db)
    config = await update_audit_config(
        db,
        target,
        enabled=payload.enabled,
        events=payload.events,
        retention_days=payload.retention_days,
    )
    await recorder.record(
        AuditEventType.AUDIT_CONFIG_UPDATED,
        "organization",
        target,
        ctx.user_id,
        ctx.email,
        "Audit configuration updated",
        {"organizationId": target, "enabled": config.enabled, "events": config.events},
        request_meta_from(request),
    )
    return AuditConfigResponse.model_validate(config)
