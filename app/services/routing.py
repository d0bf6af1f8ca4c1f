"""
Ticket routing: picks the least loaded eligible assignee for a tenant/category.

Eligibility comes from tenant assignments (category specific or tenant-wide)
held by active AGENT or IT_MANAGER users. Load is the number of the user's
assigned tickets that are still NEW or IN_PROGRESS. The load read and the
assignment write are not atomic: two tickets routed at the same moment may both
land on the same agent, which the next routing decision evens out.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.models.tenant import TenantAssignment
from app.models.ticket import OPEN_STATUSES, Ticket
from app.models.user import RoleName, User
from app.services.auth_context import get_user_with_roles
from app.services.notifications import NotificationSink, notify_ticket_assigned
from app.services.realtime import RealtimeBroadcaster
from app.utils.isolation import run_isolated
from app.utils.logging_config import logger

ELIGIBLE_ROLES = frozenset({RoleName.AGENT, RoleName.IT_MANAGER})


@dataclass(frozen=True)
class CandidateLoad:
    user_id: uuid.UUID
    load: int


async def find_eligible_assignees(
    db: AsyncSession, tenant_id: uuid.UUID, category: Optional[str]
) -> list[User]:
    """
    Users eligible for a ticket of `category` in `tenant_id`, in assignment
    creation order. Without a category only tenant-wide assignments qualify.
    """
    category_filter = TenantAssignment.category.is_(None)
    if category is not None:
        category_filter = or_(TenantAssignment.category == category, category_filter)

    result = await db.execute(
        select(User)
        .join(TenantAssignment, TenantAssignment.user_id == User.id)
        .where(TenantAssignment.tenant_id == tenant_id, category_filter)
        .where(User.is_active.is_(True))
        .order_by(TenantAssignment.created_at, TenantAssignment.id)
    )

    eligible: list[User] = []
    seen: set[uuid.UUID] = set()
    for user in result.scalars().all():
        if user.id in seen or user.role_names.isdisjoint(ELIGIBLE_ROLES):
            continue
        seen.add(user.id)
        eligible.append(user)
    return eligible


async def compute_loads(
    db: AsyncSession, user_ids: Sequence[uuid.UUID]
) -> list[CandidateLoad]:
    """Open ticket count per user, in the order the ids were given."""
    if not user_ids:
        return []
    result = await db.execute(
        select(Ticket.assignee_id, func.count(Ticket.id))
        .where(Ticket.assignee_id.in_(list(user_ids)), Ticket.status.in_(OPEN_STATUSES))
        .group_by(Ticket.assignee_id)
    )
    counts = {assignee_id: count for assignee_id, count in result.all()}
    return [CandidateLoad(user_id=uid, load=counts.get(uid, 0)) for uid in user_ids]


def select_least_loaded(loads: Sequence[CandidateLoad]) -> Optional[uuid.UUID]:
    """First candidate with the minimum load; ties keep input order."""
    best: Optional[CandidateLoad] = None
    for candidate in loads:
        if best is None or candidate.load < best.load:
            best = candidate
    return best.user_id if best else None


async def route_ticket(
    db: AsyncSession, tenant_id: Optional[uuid.UUID], category: Optional[str]
) -> Optional[uuid.UUID]:
    """
    Returns the user a new ticket should go to, or None to leave it unassigned.
    """
    if tenant_id is None:
        return None

    eligible = await find_eligible_assignees(db, tenant_id, category)
    if not eligible:
        logger.info(f"No eligible assignee for tenant {tenant_id}, category {category!r}")
        return None

    loads = await compute_loads(db, [user.id for user in eligible])
    selected = select_least_loaded(loads)
    logger.info(
        f"Routed ticket for tenant {tenant_id}, category {category!r} to {selected} "
        f"(loads: {[(str(c.user_id), c.load) for c in loads]})"
    )
    return selected


async def require_assignable_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    """
    The user a ticket may be assigned to: existing, active and holding AGENT or
    IT_MANAGER.

    Raises:
        NotFoundError: if the user does not exist.
        ValidationError: if the user is inactive or lacks an eligible role.
    """
    user = await get_user_with_roles(db, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if not user.is_active or user.role_names.isdisjoint(ELIGIBLE_ROLES):
        raise ValidationError("Assignee must be an active agent or IT manager")
    return user


async def dispatch_assignment_events(
    ticket: Ticket,
    assignee_id: uuid.UUID,
    notifier: NotificationSink,
    broadcaster: RealtimeBroadcaster,
) -> None:
    """Notification and realtime event for a new assignee. Failures are logged only."""
    await run_isolated(
        f"Assignment notification for ticket {ticket.ticket_number}",
        notify_ticket_assigned,
        notifier,
        ticket.id,
        ticket.ticket_number,
        assignee_id,
    )
    await run_isolated(
        f"Assignment broadcast for ticket {ticket.ticket_number}",
        broadcaster.broadcast_to_user,
        assignee_id,
        "ticket:assigned",
        {
            "ticket": {
                "id": str(ticket.id),
                "ticketNumber": ticket.ticket_number,
                "subject": ticket.subject,
            }
        },
    )


async def assign_ticket_to_agent(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    agent_id: uuid.UUID,
    notifier: NotificationSink,
    broadcaster: RealtimeBroadcaster,
) -> Ticket:
    """
    Persists the assignment, then notifies the agent. The assignment stands
    even if notification or broadcast fail. The agent must pass
    `require_assignable_user`.
    """
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket", ticket_id)
    await require_assignable_user(db, agent_id)

    ticket.assignee_id = agent_id
    await db.commit()
    logger.info(f"Ticket {ticket.ticket_number} assigned to {agent_id}")

    await dispatch_assignment_events(ticket, agent_id, notifier, broadcaster)
    return ticket
