import uuid

import pytest

from app.api.deps import get_audit_recorder
from app.main import app
from app.models.notification import NotificationType
from app.models.ticket import Ticket, TicketStatus
from app.models.user import RoleName
from app.services.audit import AuditRecorder


@pytest.fixture
def add_ticket(db_session):
    counter = iter(range(1000, 10000))

    async def _add_ticket(**fields) -> Ticket:
        fields.setdefault("subject", "Laptop broken")
        fields.setdefault("description", "Screen flickers")
        ticket = Ticket(ticket_number=f"TKT-2025-{next(counter)}", **fields)
        db_session.add(ticket)
        await db_session.commit()
        return ticket

    return _add_ticket


@pytest.mark.asyncio
async def test_portal_ticket_goes_to_least_loaded_category_agent(
    client, make_organization, make_tenant, make_user, assign, add_ticket, notifier, broadcaster
):
    org = await make_organization("acme")
    tenant = await make_tenant("it", org, categories=("hardware", "software"))
    specialist = await make_user("hw@acme.test", RoleName.AGENT, organization=org)
    generalist = await make_user("all@acme.test", RoleName.AGENT, organization=org)
    await assign(tenant, generalist)
    await assign(tenant, specialist, "hardware")
    await add_ticket(assignee_id=generalist.id)
    await add_ticket(assignee_id=generalist.id, status=TicketStatus.IN_PROGRESS)

    response = await client.post(
        "/api/v1/tenants/it/tickets",
        json={
            "subject": "Keyboard missing keys",
            "description": "The Q key fell off",
            "category": "hardware",
            "requester_email": "Visitor@Example.com",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["public_token"]
    assert body["ticket"]["assignee_id"] == str(specialist.id)
    assert body["ticket"]["organization_id"] == str(org.id)
    assert body["ticket"]["requester_email"] == "visitor@example.com"
    assert body["ticket"]["ticket_number"].startswith("TKT-")

    assert [(user_id, kind) for user_id, kind, _ in notifier.sent] == [
        (specialist.id, NotificationType.TICKET_ASSIGNED)
    ]
    [(user_id, event, payload)] = broadcaster.events
    assert (user_id, event) == (specialist.id, "ticket:assigned")
    assert payload["ticket"]["ticketNumber"] == body["ticket"]["ticket_number"]


@pytest.mark.asyncio
async def test_portal_ticket_without_eligible_agent_stays_unassigned(client, make_tenant, notifier):
    await make_tenant("facilities")

    response = await client.post(
        "/api/v1/tenants/facilities/tickets",
        json={"subject": "Door", "description": "Squeaks", "requester_email": "a@b.test"},
    )

    assert response.status_code == 201
    assert response.json()["ticket"]["assignee_id"] is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_login_only_tenant_rejects_anonymous_submission(client, make_tenant):
    await make_tenant("internal", requires_login=True)

    response = await client.post(
        "/api/v1/tenants/internal/tickets",
        json={"subject": "VPN", "description": "Down", "requester_email": "a@b.test"},
    )

    assert response.status_code == 401
    assert response.json() == {"detail": "Login required"}


@pytest.mark.asyncio
async def test_login_only_tenant_accepts_signed_in_user(
    client, make_tenant, make_user, auth_headers
):
    await make_tenant("internal", requires_login=True)
    user = await make_user("staff@acme.test")

    response = await client.post(
        "/api/v1/tenants/internal/tickets",
        json={"subject": "VPN", "description": "Down"},
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    assert response.json()["public_token"] is None
    assert response.json()["ticket"]["requester_id"] == str(user.id)
    assert response.json()["ticket"]["requester_email"] == "staff@acme.test"


@pytest.mark.asyncio
async def test_portal_rejects_unknown_category_and_missing_email(client, make_tenant):
    await make_tenant("it", categories=("hardware",))

    bad_category = await client.post(
        "/api/v1/tenants/it/tickets",
        json={
            "subject": "x",
            "description": "y",
            "category": "plumbing",
            "requester_email": "a@b.test",
        },
    )
    no_email = await client.post(
        "/api/v1/tenants/it/tickets", json={"subject": "x", "description": "y"}
    )
    unknown_tenant = await client.post(
        "/api/v1/tenants/nowhere/tickets",
        json={"subject": "x", "description": "y", "requester_email": "a@b.test"},
    )

    assert bad_category.status_code == 400
    assert bad_category.json() == {"detail": "Invalid category"}
    assert no_email.status_code == 400
    assert unknown_tenant.status_code == 404


@pytest.mark.asyncio
async def test_ticket_visibility(client, make_user, auth_headers):
    owner = await make_user("owner@example.com")
    stranger = await make_user("stranger@example.com")
    admin = await make_user("root@example.com", RoleName.GLOBAL_ADMIN)

    created = await client.post(
        "/api/v1/tickets",
        json={"subject": "Mail", "description": "Outlook crashes"},
        headers=auth_headers(owner),
    )
    ticket_id = created.json()["id"]

    assert created.status_code == 201
    assert (await client.get(f"/api/v1/tickets/{ticket_id}", headers=auth_headers(owner))).status_code == 200
    assert (await client.get(f"/api/v1/tickets/{ticket_id}", headers=auth_headers(admin))).status_code == 200
    hidden = await client.get(f"/api/v1/tickets/{ticket_id}", headers=auth_headers(stranger))
    assert hidden.status_code == 403
    listed = await client.get("/api/v1/tickets", headers=auth_headers(stranger))
    assert listed.json() == {"tickets": []}


@pytest.mark.asyncio
async def test_unknown_ticket_is_not_found(client, make_user, auth_headers):
    user = await make_user("owner@example.com")

    response = await client.get(f"/api/v1/tickets/{uuid.uuid4()}", headers=auth_headers(user))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_end_user_cannot_assign(client, make_user, auth_headers, add_ticket):
    requester = await make_user("owner@example.com")
    agent = await make_user("agent@example.com", RoleName.AGENT)
    ticket = await add_ticket(requester_id=requester.id)

    response = await client.post(
        f"/api/v1/tickets/{ticket.id}/assign",
        json={"agent_id": str(agent.id)},
        headers=auth_headers(requester),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_agent_closes_and_reopens_ticket(
    client, make_user, auth_headers, add_ticket, notifier
):
    requester = await make_user("owner@example.com")
    agent = await make_user("agent@example.com", RoleName.AGENT)
    ticket = await add_ticket(requester_id=requester.id, assignee_id=agent.id)

    closed = await client.patch(
        f"/api/v1/tickets/{ticket.id}", json={"status": "CLOSED"}, headers=auth_headers(agent)
    )
    reopened = await client.patch(
        f"/api/v1/tickets/{ticket.id}",
        json={"status": "IN_PROGRESS"},
        headers=auth_headers(agent),
    )

    assert closed.status_code == 200
    assert closed.json()["closed_at"] is not None
    assert reopened.json()["closed_at"] is None
    assert reopened.json()["status"] == "IN_PROGRESS"

    updates = [(user_id, payload["changes"]) for user_id, kind, payload in notifier.sent]
    assert updates[0] == (requester.id, {"status": {"from": "NEW", "to": "CLOSED"}})
    assert updates[1] == (agent.id, {"status": {"from": "NEW", "to": "CLOSED"}})
    assert len(updates) == 4


@pytest.mark.asyncio
async def test_agent_cannot_reassign_through_update(client, make_user, auth_headers, add_ticket):
    agent = await make_user("agent@example.com", RoleName.AGENT)
    other = await make_user("other@example.com", RoleName.AGENT)
    ticket = await add_ticket(assignee_id=agent.id)

    response = await client.patch(
        f"/api/v1/tickets/{ticket.id}",
        json={"assignee_id": str(other.id)},
        headers=auth_headers(agent),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_manager_routes_unassigned_ticket(
    client, make_organization, make_tenant, make_user, assign, auth_headers, add_ticket, broadcaster
):
    org = await make_organization("acme")
    tenant = await make_tenant("it", org)
    manager = await make_user("boss@acme.test", RoleName.IT_MANAGER, organization=org)
    agent = await make_user("agent@acme.test", RoleName.AGENT, organization=org)
    await assign(tenant, agent)
    ticket = await add_ticket(tenant_id=tenant.id, organization_id=org.id)

    response = await client.post(
        f"/api/v1/tickets/{ticket.id}/route", headers=auth_headers(manager)
    )

    assert response.status_code == 200
    assert response.json()["assignee_id"] == str(agent.id)
    assert [(user_id, event) for user_id, event, _ in broadcaster.events] == [
        (agent.id, "ticket:assigned")
    ]


@pytest.mark.asyncio
async def test_ticket_for_unassigned_tenant_is_forbidden(
    client, make_organization, make_tenant, make_user, auth_headers
):
    org = await make_organization("acme")
    tenant = await make_tenant("it", org)
    agent = await make_user("agent@acme.test", RoleName.AGENT, organization=org)

    response = await client.post(
        "/api/v1/tickets",
        json={"subject": "x", "description": "y", "tenant_id": str(tenant.id)},
        headers=auth_headers(agent),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "No access to this tenant"}


@pytest.mark.asyncio
async def test_ticket_is_created_when_audit_store_fails(client, make_user, auth_headers):
    def unavailable_session():
        raise RuntimeError("audit database unavailable")

    app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(unavailable_session)
    user = await make_user("owner@example.com")

    response = await client.post(
        "/api/v1/tickets",
        json={"subject": "Mail", "description": "Outlook crashes"},
        headers=auth_headers(user),
    )

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_tickets_cannot_be_handed_to_end_users(
    client, make_organization, make_user, auth_headers, add_ticket, notifier
):
    org = await make_organization("acme")
    manager = await make_user("boss@acme.test", RoleName.IT_MANAGER, organization=org)
    requester = await make_user("owner@acme.test", organization=org)
    ticket = await add_ticket(organization_id=org.id, requester_id=requester.id)
    headers = auth_headers(manager)

    patched = await client.patch(
        f"/api/v1/tickets/{ticket.id}",
        json={"assignee_id": str(requester.id)},
        headers=headers,
    )
    assigned = await client.post(
        f"/api/v1/tickets/{ticket.id}/assign",
        json={"agent_id": str(requester.id)},
        headers=headers,
    )
    created = await client.post(
        "/api/v1/tickets",
        json={"subject": "x", "description": "y", "assignee_id": str(requester.id)},
        headers=headers,
    )
    ghost = await client.post(
        f"/api/v1/tickets/{ticket.id}/assign",
        json={"agent_id": str(uuid.uuid4())},
        headers=headers,
    )
    ghost_patch = await client.patch(
        f"/api/v1/tickets/{ticket.id}",
        json={"assignee_id": str(uuid.uuid4())},
        headers=headers,
    )

    assert patched.status_code == 400
    assert patched.json() == {"detail": "Assignee must be an active agent or IT manager"}
    assert assigned.status_code == 400
    assert created.status_code == 400
    assert ghost.status_code == 404
    assert ghost_patch.status_code == 404
    current = await client.get(f"/api/v1/tickets/{ticket.id}", headers=headers)
    assert current.json()["assignee_id"] is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_agent_escalates_ticket_to_managers(
    client, make_organization, make_tenant, make_user, assign, auth_headers, add_ticket, notifier
):
    org = await make_organization("acme")
    tenant = await make_tenant("it", org)
    manager = await make_user("boss@acme.test", RoleName.IT_MANAGER, organization=org)
    agent = await make_user("agent@acme.test", RoleName.AGENT, organization=org)
    requester = await make_user("owner@acme.test", organization=org)
    await assign(tenant, agent)
    ticket = await add_ticket(
        tenant_id=tenant.id,
        organization_id=org.id,
        requester_id=requester.id,
        assignee_id=agent.id,
    )
    url = f"/api/v1/tickets/{ticket.id}/escalate"

    options = await client.get(url, headers=auth_headers(agent))
    escalated = await client.post(
        url,
        json={"escalated_to_role": "IT_MANAGER", "escalation_note": "Outage"},
        headers=auth_headers(agent),
    )
    no_target = await client.post(url, json={}, headers=auth_headers(agent))
    by_requester = await client.post(
        url, json={"escalated_to_role": "AGENT"}, headers=auth_headers(requester)
    )

    assert options.json() == {
        "available_roles": ["AGENT", "IT_MANAGER"],
        "available_users": [
            {"id": str(agent.id), "email": "agent@acme.test", "first_name": None, "last_name": None}
        ],
    }
    assert escalated.status_code == 200
    assert escalated.json()["escalated_to_role"] == "IT_MANAGER"
    assert escalated.json()["escalated_by_id"] == str(agent.id)
    assert escalated.json()["escalation_note"] == "Outage"
    assert escalated.json()["assignee_id"] == str(agent.id)
    assert [(user_id, kind) for user_id, kind, _ in notifier.sent] == [
        (manager.id, NotificationType.ESCALATION)
    ]
    assert no_target.status_code == 400
    assert by_requester.status_code == 403
