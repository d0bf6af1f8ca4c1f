"""Ticket lifecycle: numbering, creation with auto-routing, updates and visibility."""

import random
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import false, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, TicketNumberExhaustedError
from app.models.ticket import Ticket, TicketPriority, TicketStatus
from app.models.user import RoleName
from app.services.auth_context import AuthContext
from app.services.notifications import NotificationSink, notify_ticket_updated
from app.services.realtime import RealtimeBroadcaster
from app.services.routing import (
    dispatch_assignment_events,
    require_assignable_user,
    route_ticket,
)
from app.services.scoping import agent_visible_tenant_ids
from app.settings import settings
from app.utils.isolation import run_isolated
from app.utils.logging_config import logger

ORGANIZATION_WIDE_ROLES = frozenset({RoleName.ADMIN, RoleName.IT_MANAGER})
UPDATABLE_FIELDS = ("subject", "description", "status", "priority", "assignee_id")


def format_ticket_number(year: int, suffix: int) -> str:
    return f"TKT-{year}-{suffix:04d}"


async def generate_ticket_number(db: AsyncSession) -> str:
    """
    A `TKT-<year>-<4 digits>` number not yet used by any ticket.

    Raises:
        TicketNumberExhaustedError: if every attempt hit an existing number.
    """
    year = datetime.now(timezone.utc).year
    for _ in range(settings.TICKET_NUMBER_MAX_ATTEMPTS):
        candidate = format_ticket_number(year, random.randint(1000, 9999))
        taken = await db.scalar(
            select(Ticket.id).where(Ticket.ticket_number == candidate)
        )
        if taken is None:
            return candidate
        logger.warning(f"Ticket number collision on {candidate}, retrying")
    raise TicketNumberExhaustedError(
        f"Could not allocate a ticket number after {settings.TICKET_NUMBER_MAX_ATTEMPTS} attempts"
    )


async def _insert_with_fresh_number(db: AsyncSession, fields: dict[str, Any]) -> Ticket:
    """
    Inserts a ticket under a newly generated number. A number taken by a
    concurrent insert between the check and the flush is retried inside a
    savepoint, so the caller's transaction and loaded objects are untouched.
    """
    for _ in range(settings.TICKET_NUMBER_MAX_ATTEMPTS):
        ticket = Ticket(ticket_number=await generate_ticket_number(db), **fields)
        try:
            async with db.begin_nested():
                db.add(ticket)
                await db.flush()
            return ticket
        except IntegrityError:
            taken = await db.scalar(
                select(Ticket.id).where(Ticket.ticket_number == ticket.ticket_number)
            )
            if taken is None:
                raise
            logger.warning(f"Ticket number {ticket.ticket_number} taken concurrently, retrying")
    raise TicketNumberExhaustedError(
        f"Could not insert a ticket after {settings.TICKET_NUMBER_MAX_ATTEMPTS} attempts"
    )


async def get_ticket(db: AsyncSession, ticket_id: uuid.UUID) -> Ticket:
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket", ticket_id)
    return ticket


async def create_ticket(
    db: AsyncSession,
    *,
    subject: str,
    description: str,
    notifier: NotificationSink,
    broadcaster: RealtimeBroadcaster,
    priority: Optional[TicketPriority] = None,
    category: Optional[str] = None,
    tenant_id: Optional[uuid.UUID] = None,
    organization_id: Optional[uuid.UUID] = None,
    requester_id: Optional[uuid.UUID] = None,
    requester_email: Optional[str] = None,
    requester_name: Optional[str] = None,
    public_token_id: Optional[str] = None,
    custom_fields: Optional[dict[str, Any]] = None,
    assignee_id: Optional[uuid.UUID] = None,
    auto_route: Optional[bool] = None,
) -> Ticket:
    """
    Creates a NEW ticket. An explicit assignee must pass
    `require_assignable_user`. Without one, a ticket bound to a tenant is routed
    to the least loaded eligible agent; if nobody is eligible it stays
    unassigned.
    """
    if auto_route is None:
        auto_route = settings.AUTO_ROUTE_TICKETS
    if assignee_id is not None:
        await require_assignable_user(db, assignee_id)
    elif auto_route:
        assignee_id = await route_ticket(db, tenant_id, category)

    fields = dict(
        subject=subject,
        description=description,
        status=TicketStatus.NEW,
        priority=priority or TicketPriority.MEDIUM,
        category=category,
        tenant_id=tenant_id,
        organization_id=organization_id,
        requester_id=requester_id,
        requester_email=requester_email,
        requester_name=requester_name,
        public_token_id=public_token_id,
        custom_fields=custom_fields or {},
        assignee_id=assignee_id,
    )
    ticket = await _insert_with_fresh_number(db, fields)
    await db.commit()
    logger.info(f"Created ticket {ticket.ticket_number} (assignee: {assignee_id})")

    if ticket.assignee_id is not None:
        await dispatch_assignment_events(ticket, ticket.assignee_id, notifier, broadcaster)
    return ticket


async def update_ticket(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    changes: dict[str, Any],
    notifier: NotificationSink,
    broadcaster: RealtimeBroadcaster,
) -> tuple[Ticket, dict[str, Any]]:
    """
    Applies field changes. `closed_at` is stamped when the status moves to
    CLOSED and cleared when a closed ticket is reopened.

    Returns:
        The ticket and a `{field: {"from": old, "to": new}}` map of what changed.
    """
    ticket = await get_ticket(db, ticket_id)
    new_assignee = changes.get("assignee_id")
    if new_assignee is not None and new_assignee != ticket.assignee_id:
        await require_assignable_user(db, new_assignee)
    previous_assignee = ticket.assignee_id
    previous_requester = ticket.requester_id

    diff: dict[str, Any] = {}
    for field in UPDATABLE_FIELDS:
        if field not in changes:
            continue
        old, new = getattr(ticket, field), changes[field]
        if field != "assignee_id" and new is None:
            continue
        if old != new:
            diff[field] = {"from": _plain(old), "to": _plain(new)}
            setattr(ticket, field, new)

    if "status" in diff:
        if ticket.status == TicketStatus.CLOSED:
            ticket.closed_at = datetime.now(timezone.utc)
        elif ticket.closed_at is not None:
            ticket.closed_at = None

    if not diff:
        return ticket, diff

    await db.commit()
    logger.info(f"Updated ticket {ticket.ticket_number}: {sorted(diff)}")

    recipients = []
    for user_id in (ticket.requester_id, ticket.assignee_id, previous_requester, previous_assignee):
        if user_id is not None and user_id not in recipients:
            recipients.append(user_id)
    if recipients:
        await run_isolated(
            f"Update notification for ticket {ticket.ticket_number}",
            notify_ticket_updated,
            notifier,
            ticket.id,
            ticket.ticket_number,
            diff,
            recipients,
        )

    if "assignee_id" in diff and ticket.assignee_id is not None:
        await dispatch_assignment_events(ticket, ticket.assignee_id, notifier, broadcaster)
    return ticket, diff


def _plain(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    return getattr(value, "value", value)


async def can_view_ticket(db: AsyncSession, ctx: AuthContext, ticket: Ticket) -> bool:
    if ctx.is_global_admin:
        return True
    if ctx.user_id in (ticket.requester_id, ticket.assignee_id):
        return True
    if (
        ctx.has_any_role(ORGANIZATION_WIDE_ROLES)
        and ctx.organization_id is not None
        and ticket.organization_id == ctx.organization_id
    ):
        return True
    if ctx.has_role(RoleName.AGENT) and ticket.tenant_id is not None:
        return ticket.tenant_id in await agent_visible_tenant_ids(db, ctx.user_id)
    return False


async def list_tickets_for(
    db: AsyncSession,
    ctx: AuthContext,
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    tenant_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
) -> list[Ticket]:
    """Tickets the principal may see, newest first, with optional filters."""
    query = select(Ticket)

    if not ctx.is_global_admin:
        visible = [Ticket.requester_id == ctx.user_id, Ticket.assignee_id == ctx.user_id]
        if ctx.has_any_role(ORGANIZATION_WIDE_ROLES) and ctx.organization_id is not None:
            visible.append(Ticket.organization_id == ctx.organization_id)
        if ctx.has_role(RoleName.AGENT):
            tenant_ids = await agent_visible_tenant_ids(db, ctx.user_id)
            visible.append(Ticket.tenant_id.in_(tenant_ids) if tenant_ids else false())
        query = query.where(or_(*visible))

    if status is not None:
        query = query.where(Ticket.status == status)
    if priority is not None:
        query = query.where(Ticket.priority == priority)
    if tenant_id is not None:
        query = query.where(Ticket.tenant_id == tenant_id)
    if assignee_id is not None:
        query = query.where(Ticket.assignee_id == assignee_id)

    result = await db.execute(query.order_by(Ticket.created_at.desc()))
    return list(result.scalars().all())


async def list_public_tickets(
    db: AsyncSession, public_id: str, tenant_id: Optional[uuid.UUID] = None
) -> list[Ticket]:
    query = select(Ticket).where(Ticket.public_token_id == public_id)
    if tenant_id is not None:
        query = query.where(Ticket.tenant_id == tenant_id)
    result = await db.execute(query.order_by(Ticket.created_at.desc()))
    return list(result.scalars().all())


async def merge_public_token_tickets(
    db: AsyncSession, public_id: str, user_id: uuid.UUID
) -> int:
    """Re-owns every ticket submitted under `public_id` to `user_id`."""
    result = await db.execute(
        update(Ticket)
        .where(Ticket.public_token_id == public_id)
        .values(requester_id=user_id)
        .execution_options(synchronize_session="evaluate")
    )
    await db.commit()
    merged = result.rowcount or 0
    logger.info(f"Merged {merged} public ticket(s) into user {user_id}")
    return merged
