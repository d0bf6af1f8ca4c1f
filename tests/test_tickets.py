import re
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from app.exceptions import NotFoundError, TicketNumberExhaustedError, ValidationError
from app.models.notification import NotificationType
from app.models.ticket import Ticket, TicketPriority, TicketStatus
from app.models.user import RoleName
from app.services import tickets as ticket_service
from app.services.auth_context import AuthContext
from app.services.tickets import (
    can_view_ticket,
    create_ticket,
    generate_ticket_number,
    list_public_tickets,
    list_tickets_for,
    merge_public_token_tickets,
    update_ticket,
)


@pytest.fixture
def new_ticket(db_session, notifier, broadcaster):
    async def _new_ticket(**fields) -> Ticket:
        fields.setdefault("subject", "Laptop will not boot")
        fields.setdefault("description", "Black screen after update")
        return await create_ticket(
            db_session, notifier=notifier, broadcaster=broadcaster, **fields
        )

    return _new_ticket


@pytest.mark.asyncio
async def test_ticket_number_format(db_session):
    number = await generate_ticket_number(db_session)

    year = datetime.now(timezone.utc).year
    assert re.fullmatch(rf"TKT-{year}-\d{{4}}", number)


@pytest.mark.asyncio
async def test_ticket_number_retries_past_collisions(db_session, new_ticket, monkeypatch):
    suffixes = iter([1234, 1234, 5678])
    monkeypatch.setattr(ticket_service.random, "randint", lambda a, b: next(suffixes))

    first = await new_ticket()
    second = await new_ticket()

    assert first.ticket_number.endswith("-1234")
    assert second.ticket_number.endswith("-5678")


@pytest.mark.asyncio
async def test_ticket_number_exhaustion(db_session, new_ticket, monkeypatch):
    monkeypatch.setattr(ticket_service.random, "randint", lambda a, b: 7)
    await new_ticket()

    with pytest.raises(TicketNumberExhaustedError):
        await generate_ticket_number(db_session)


@pytest.mark.asyncio
async def test_number_taken_between_check_and_insert_is_retried(
    db_session, new_ticket, monkeypatch
):
    existing = await new_ticket()
    candidates = iter([existing.ticket_number, "TKT-2025-0008"])

    async def stale_generator(db):
        return next(candidates)

    monkeypatch.setattr(ticket_service, "generate_ticket_number", stale_generator)

    ticket = await new_ticket(subject="Printer jam")

    assert ticket.ticket_number == "TKT-2025-0008"
    assert existing.subject == "Laptop will not boot"
    stored = await db_session.scalar(select(func.count()).select_from(Ticket))
    assert stored == 2


@pytest.mark.asyncio
async def test_insert_gives_up_when_numbers_keep_colliding(
    db_session, new_ticket, monkeypatch
):
    existing = await new_ticket()

    async def stale_generator(db):
        return existing.ticket_number

    monkeypatch.setattr(ticket_service, "generate_ticket_number", stale_generator)

    with pytest.raises(TicketNumberExhaustedError):
        await new_ticket(subject="Printer jam")

    stored = await db_session.scalar(select(func.count()).select_from(Ticket))
    assert stored == 1


@pytest.mark.asyncio
async def test_create_ticket_routes_and_notifies(
    new_ticket, make_tenant, make_user, assign, notifier, broadcaster
):
    tenant = await make_tenant("it", categories=("hardware",))
    agent = await make_user("agent@example.com", RoleName.AGENT)
    await assign(tenant, agent, category="hardware")

    ticket = await new_ticket(tenant_id=tenant.id, category="hardware")

    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.MEDIUM
    assert ticket.assignee_id == agent.id
    assert [(uid, kind) for uid, kind, _ in notifier.sent] == [
        (agent.id, NotificationType.TICKET_ASSIGNED)
    ]
    assert broadcaster.events[0][1] == "ticket:assigned"


@pytest.mark.asyncio
async def test_create_ticket_without_eligible_agent_stays_unassigned(
    new_ticket, make_tenant, notifier
):
    tenant = await make_tenant("it")

    ticket = await new_ticket(tenant_id=tenant.id, category="network")

    assert ticket.assignee_id is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_explicit_assignee_skips_routing(new_ticket, make_tenant, make_user, assign):
    tenant = await make_tenant("it")
    routed = await make_user("routed@example.com", RoleName.AGENT)
    chosen = await make_user("chosen@example.com", RoleName.AGENT)
    await assign(tenant, routed)

    ticket = await new_ticket(tenant_id=tenant.id, assignee_id=chosen.id)

    assert ticket.assignee_id == chosen.id


@pytest.mark.asyncio
async def test_explicit_assignee_must_be_active_staff(db_session, new_ticket, make_user):
    requester = await make_user("user@example.com")
    retired = await make_user("old@example.com", RoleName.AGENT, is_active=False)
    admin = await make_user("admin@example.com", RoleName.ADMIN)
    manager = await make_user("boss@example.com", RoleName.IT_MANAGER)

    for target in (requester, retired, admin):
        with pytest.raises(ValidationError):
            await new_ticket(assignee_id=target.id)
    with pytest.raises(NotFoundError):
        await new_ticket(assignee_id=uuid.uuid4())

    ticket = await new_ticket(assignee_id=manager.id)
    assert ticket.assignee_id == manager.id
    assert await db_session.scalar(select(func.count()).select_from(Ticket)) == 1


@pytest.mark.asyncio
async def test_update_rejects_end_user_assignee(
    db_session, new_ticket, make_user, notifier, broadcaster
):
    requester = await make_user("user@example.com")
    ticket = await new_ticket(requester_id=requester.id)

    with pytest.raises(ValidationError):
        await update_ticket(
            db_session, ticket.id, {"assignee_id": requester.id}, notifier, broadcaster
        )

    assert (await db_session.get(Ticket, ticket.id)).assignee_id is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_closed_at_follows_status(db_session, new_ticket, notifier, broadcaster):
    ticket = await new_ticket()

    ticket, diff = await update_ticket(
        db_session, ticket.id, {"status": TicketStatus.IN_PROGRESS}, notifier, broadcaster
    )
    assert ticket.closed_at is None
    assert diff == {"status": {"from": "NEW", "to": "IN_PROGRESS"}}

    ticket, _ = await update_ticket(
        db_session, ticket.id, {"status": TicketStatus.CLOSED}, notifier, broadcaster
    )
    assert ticket.closed_at is not None

    ticket, _ = await update_ticket(
        db_session, ticket.id, {"status": TicketStatus.IN_PROGRESS}, notifier, broadcaster
    )
    assert ticket.closed_at is None


@pytest.mark.asyncio
async def test_update_without_changes_is_a_no_op(db_session, new_ticket, notifier, broadcaster):
    ticket = await new_ticket(priority=TicketPriority.HIGH)

    _, diff = await update_ticket(
        db_session, ticket.id, {"priority": TicketPriority.HIGH}, notifier, broadcaster
    )

    assert diff == {}
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_reassignment_notifies_new_assignee(
    db_session, new_ticket, make_user, notifier, broadcaster
):
    requester = await make_user("user@example.com")
    agent = await make_user("agent@example.com", RoleName.AGENT)
    ticket = await new_ticket(requester_id=requester.id)

    await update_ticket(db_session, ticket.id, {"assignee_id": agent.id}, notifier, broadcaster)

    kinds = {(uid, kind) for uid, kind, _ in notifier.sent}
    assert (agent.id, NotificationType.TICKET_ASSIGNED) in kinds
    assert (requester.id, NotificationType.TICKET_UPDATED) in kinds
    assert [event[:2] for event in broadcaster.events] == [(agent.id, "ticket:assigned")]


@pytest.mark.asyncio
async def test_visibility_by_role(
    db_session, new_ticket, make_organization, make_tenant, make_user, assign
):
    acme = await make_organization("acme")
    globex = await make_organization("globex")
    it = await make_tenant("acme-it", organization=acme)
    hr = await make_tenant("acme-hr", organization=acme)
    requester = await make_user("user@acme.test", organization=acme)
    agent = await make_user("agent@acme.test", RoleName.AGENT, organization=acme)
    manager = await make_user("boss@acme.test", RoleName.IT_MANAGER, organization=acme)
    stranger = await make_user("boss@globex.test", RoleName.ADMIN, organization=globex)
    root = await make_user("root@example.com", RoleName.GLOBAL_ADMIN)
    await assign(it, agent, category="hardware")

    it_ticket = await new_ticket(
        tenant_id=it.id, organization_id=acme.id, requester_id=requester.id, auto_route=False
    )
    hr_ticket = await new_ticket(tenant_id=hr.id, organization_id=acme.id, auto_route=False)

    def numbers(tickets):
        return {t.ticket_number for t in tickets}

    both = {it_ticket.ticket_number, hr_ticket.ticket_number}
    assert numbers(await list_tickets_for(db_session, AuthContext.from_user(root))) == both
    assert numbers(await list_tickets_for(db_session, AuthContext.from_user(manager))) == both
    assert numbers(await list_tickets_for(db_session, AuthContext.from_user(agent))) == {
        it_ticket.ticket_number
    }
    assert numbers(await list_tickets_for(db_session, AuthContext.from_user(requester))) == {
        it_ticket.ticket_number
    }
    assert await list_tickets_for(db_session, AuthContext.from_user(stranger)) == []

    assert await can_view_ticket(db_session, AuthContext.from_user(agent), it_ticket) is True
    assert await can_view_ticket(db_session, AuthContext.from_user(agent), hr_ticket) is False
    assert await can_view_ticket(db_session, AuthContext.from_user(stranger), it_ticket) is False


@pytest.mark.asyncio
async def test_list_filters(db_session, new_ticket, make_user):
    root = await make_user("root@example.com", RoleName.GLOBAL_ADMIN)
    await new_ticket(priority=TicketPriority.LOW)
    urgent = await new_ticket(priority=TicketPriority.CRITICAL)

    found = await list_tickets_for(
        db_session, AuthContext.from_user(root), priority=TicketPriority.CRITICAL
    )

    assert [t.id for t in found] == [urgent.id]


@pytest.mark.asyncio
async def test_merge_public_token_tickets(db_session, new_ticket, make_user):
    first = await new_ticket(public_token_id="anon-1", requester_email="me@example.com")
    second = await new_ticket(public_token_id="anon-1", requester_email="me@example.com")
    await new_ticket(public_token_id="anon-2", requester_email="other@example.com")
    user = await make_user("me@example.com")

    merged = await merge_public_token_tickets(db_session, "anon-1", user.id)

    assert merged == 2
    owned = {t.id for t in await list_tickets_for(db_session, AuthContext.from_user(user))}
    assert owned == {first.id, second.id}
    assert len(await list_public_tickets(db_session, "anon-2")) == 1
