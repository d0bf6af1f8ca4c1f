"""
Audit recording and querying.

Recording is best effort: the recorder opens its own session so it never joins
the caller's transaction, and every failure is logged and dropped so the
triggering operation always completes.
"""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.db import SessionLocal
from app.models.audit import AuditConfig, AuditEventType, AuditLog
from app.settings import settings
from app.utils.logging_config import logger

UNKNOWN = "unknown"


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN


def request_meta_from(request: Optional[Request]) -> RequestMeta:
    """
    Client IP (first `x-forwarded-for` hop, then `x-real-ip`) and user agent,
    defaulting to "unknown".
    """
    if request is None:
        return RequestMeta()
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    ip_address = ip_address or request.headers.get("x-real-ip") or UNKNOWN
    user_agent = request.headers.get("user-agent") or UNKNOWN
    return RequestMeta(ip_address=ip_address, user_agent=user_agent)


async def should_log_event(
    db: AsyncSession, organization_id: uuid.UUID, event_type: AuditEventType
) -> bool:
    config = await get_audit_config(db, organization_id)
    if config is None or not config.enabled:
        return False
    return event_type.value in config.events


async def log_event(
    db: AsyncSession,
    *,
    event_type: AuditEventType,
    entity_type: str,
    entity_id: Optional[str],
    user_id: Optional[uuid.UUID],
    user_email: str,
    description: str,
    metadata: Optional[dict[str, Any]] = None,
    organization_id: Optional[uuid.UUID] = None,
    request_meta: RequestMeta = RequestMeta(),
) -> Optional[AuditLog]:
    """
    Appends an audit entry. Organization events are kept only when the
    organization's audit config is enabled and lists the event type.
    """
    if organization_id is not None and not await should_log_event(
        db, organization_id, event_type
    ):
        return None

    entry = AuditLog(
        organization_id=organization_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        user_email=user_email,
        description=description,
        event_metadata=metadata,
        ip_address=request_meta.ip_address,
        user_agent=request_meta.user_agent,
    )
    db.add(entry)
    await db.commit()
    return entry


def _organization_from(metadata: Optional[dict[str, Any]]) -> Optional[uuid.UUID]:
    raw = (metadata or {}).get("organizationId")
    if raw is None:
        return None
    return raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))


class AuditRecorder:
    """Records audit events in a dedicated session; never raises."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = SessionLocal):
        self.session_factory = session_factory

    async def record(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[Any],
        user_id: Optional[uuid.UUID],
        user_email: str,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        request_meta: Optional[RequestMeta] = None,
    ) -> None:
        try:
            async with self.session_factory() as session:
                await log_event(
                    session,
                    event_type=event_type,
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    user_id=user_id,
                    user_email=user_email,
                    description=description,
                    metadata=_jsonable(metadata),
                    organization_id=_organization_from(metadata),
                    request_meta=request_meta or RequestMeta(),
                )
        except Exception as e:
            logger.error(
                f"Failed to log audit event {event_type.value} for {entity_type}: {e}",
                exc_info=True,
            )


def _jsonable(metadata: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if metadata is None:
        return None
    return {
        key: str(value) if isinstance(value, (uuid.UUID, datetime)) else value
        for key, value in metadata.items()
    }


audit_recorder = AuditRecorder()


async def audit_log(
    event_type: AuditEventType,
    entity_type: str,
    entity_id: Optional[Any],
    user_id: Optional[uuid.UUID],
    user_email: str,
    description: str,
    metadata: Optional[dict[str, Any]] = None,
    request_meta: Optional[RequestMeta] = None,
) -> None:
    await audit_recorder.record(
        event_type,
        entity_type,
        entity_id,
        user_id,
        user_email,
        description,
        metadata,
        request_meta,
    )


@dataclass
class AuditLogFilters:
    organization_id: Optional[uuid.UUID] = None
    event_type: Optional[AuditEventType] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = 1
    limit: int = settings.AUDIT_PAGE_SIZE


async def get_audit_logs(db: AsyncSession, filters: AuditLogFilters) -> dict[str, Any]:
    conditions = []
    if filters.organization_id is not None:
        conditions.append(AuditLog.organization_id == filters.organization_id)
    if filters.event_type is not None:
        conditions.append(AuditLog.event_type == filters.event_type)
    if filters.entity_type:
        conditions.append(AuditLog.entity_type == filters.entity_type)
    if filters.entity_id:
        conditions.append(AuditLog.entity_id == filters.entity_id)
    if filters.user_id is not None:
        conditions.append(AuditLog.user_id == filters.user_id)
    if filters.start_date is not None:
        conditions.append(AuditLog.created_at >= filters.start_date)
    if filters.end_date is not None:
        conditions.append(AuditLog.created_at <= filters.end_date)

    total = await db.scalar(select(func.count(AuditLog.id)).where(*conditions))
    result = await db.execute(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc())
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )
    return {
        "logs": list(result.scalars().all()),
        "pagination": {
            "page": filters.page,
            "limit": filters.limit,
            "total": total or 0,
            "totalPages": math.ceil((total or 0) / filters.limit),
        },
    }


async def get_audit_config(
    db: AsyncSession, organization_id: uuid.UUID
) -> Optional[AuditConfig]:
    return await db.scalar(
        select(AuditConfig).where(AuditConfig.organization_id == organization_id)
    )


async def update_audit_config(
    db: AsyncSession,
    organization_id: uuid.UUID,
    enabled: Optional[bool] = None,
    events: Optional[list[AuditEventType]] = None,
    retention_days: Optional[int] = None,
) -> AuditConfig:
    config = await get_audit_config(db, organization_id)
    if config is None:
        config = AuditConfig(
            organization_id=organization_id,
            enabled=True if enabled is None else enabled,
            events=[e.value for e in events or []],
            retention_days=retention_days,
        )
        db.add(config)
    else:
        if enabled is not None:
            config.enabled = enabled
        if events is not None:
            config.events = [e.value for e in events]
        if retention_days is not None:
            config.retention_days = retention_days
    await db.commit()
    return config
