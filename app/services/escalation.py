"""
Ticket escalation to a named staff member or to a staff role.

An escalation records who raised it, when, and the target on the ticket
itself. It does not change the assignee. A later escalation replaces the
earlier target.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.models.tenant import TenantAssignment
from app.models.ticket import Ticket
from app.models.user import RoleName, User
from app.services.auth_context import get_user_with_roles
from app.services.notifications import NotificationSink, notify_ticket_escalated
from app.services.scoping import PROTECTED_ROLES
from app.utils.isolation import run_isolated
from app.utils.logging_config import logger

ESCALATION_ROLES = (RoleName.AGENT, RoleName.IT_MANAGER)


def can_receive_escalation(user: User) -> bool:
    roles = user.role_names
    return (
        user.is_active
        and any(role in roles for role in ESCALATION_ROLES)
        and roles.isdisjoint(PROTECTED_ROLES)
    )


def _tenant_wide_members(tenant_id: uuid.UUID):
    return select(TenantAssignment.user_id).where(
        TenantAssignment.tenant_id == tenant_id, TenantAssignment.category.is_(None)
    )


async def escalation_candidates(db: AsyncSession, ticket: Ticket) -> list[User]:
    """
    Users a ticket may be escalated to: active staff of the ticket's
    organization and, for a tenant ticket, holders of a tenant-wide assignment.
    """
    query = select(User).where(User.is_active.is_(True))
    if ticket.organization_id is not None:
        query = query.where(User.organization_id == ticket.organization_id)
    if ticket.tenant_id is not None:
        query = query.where(User.id.in_(_tenant_wide_members(ticket.tenant_id)))
    result = await db.execute(query.order_by(User.email))
    return [user for user in result.scalars().all() if can_receive_escalation(user)]


async def _require_escalation_user(
    db: AsyncSession, ticket: Ticket, user_id: uuid.UUID
) -> User:
    user = await get_user_with_roles(db, user_id)
    if user is None or (
        ticket.organization_id is not None and user.organization_id != ticket.organization_id
    ):
        raise NotFoundError("User", user_id)
    if not can_receive_escalation(user):
        raise ValidationError("Escalation target must be an active agent or IT manager")
    if ticket.tenant_id is not None:
        assigned = await db.scalar(
            _tenant_wide_members(ticket.tenant_id).where(TenantAssignment.user_id == user_id)
        )
        if assigned is None:
            raise ValidationError("User is not assigned to this ticket's tenant")
    return user


async def _role_holders(db: AsyncSession, ticket: Ticket, role: RoleName) -> list[uuid.UUID]:
    if ticket.organization_id is None:
        return []
    result = await db.execute(
        select(User)
        .where(User.organization_id == ticket.organization_id, User.is_active.is_(True))
        .order_by(User.email)
    )
    return [user.id for user in result.scalars().all() if role in user.role_names]


async def escalate_ticket(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    escalated_by_id: uuid.UUID,
    notifier: NotificationSink,
    *,
    to_user_id: Optional[uuid.UUID] = None,
    to_role: Optional[RoleName] = None,
    note: Optional[str] = None,
) -> Ticket:
    """
    Escalates a ticket to exactly one target, a user or a role, then notifies
    the target user or the role's holders in the ticket's organization.

    Raises:
        ValidationError: for zero or two targets, a role other than AGENT or
            IT_MANAGER, or an ineligible user.
        NotFoundError: if the ticket or the user does not exist.
    """
    if (to_user_id is None) == (to_role is None):
        raise ValidationError("Provide exactly one escalation target: a user or a role")
    if to_role is not None and to_role not in ESCALATION_ROLES:
        raise ValidationError("Tickets can only be escalated to AGENT or IT_MANAGER")

    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket", ticket_id)
    if to_user_id is not None:
        await _require_escalation_user(db, ticket, to_user_id)

    ticket.escalated_to_user_id = to_user_id
    ticket.escalated_to_role = to_role
    ticket.escalated_by_id = escalated_by_id
    ticket.escalated_at = datetime.now(timezone.utc)
    ticket.escalation_note = note
    await db.commit()
    logger.info(
        f"Ticket {ticket.ticket_number} escalated to {to_user_id or to_role.value} by {escalated_by_id}"
    )

    recipients = [to_user_id] if to_user_id is not None else await _role_holders(db, ticket, to_role)
    recipients = [user_id for user_id in recipients if user_id != escalated_by_id]
    if recipients:
        await run_isolated(
            f"Escalation notification for ticket {ticket.ticket_number}",
            notify_ticket_escalated,
            notifier,
            ticket.id,
            ticket.ticket_number,
            recipients,
            note,
        )
    return ticket
