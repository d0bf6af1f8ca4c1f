import pytest
from sqlalchemy import select

from app.models.audit import AuditEventType, AuditLog
from app.models.ticket import Ticket
from app.models.user import RoleName
from app.utils.jwt_manager import sign_public_token


@pytest.mark.asyncio
async def test_login_issues_tokens(client, make_user, password):
    await make_user("agent@example.com", RoleName.AGENT)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "Agent@Example.com", "password": password}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "agent@example.com"
    assert body["user"]["roles"] == ["AGENT"]
    assert body["merged_tickets"] == 0

    me = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == "agent@example.com"


@pytest.mark.asyncio
async def test_failed_login_is_audited(client, db_session, make_user):
    await make_user("agent@example.com", RoleName.AGENT)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "agent@example.com", "password": "wrong"}
    )

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid email or password"}
    events = (await db_session.execute(select(AuditLog.event_type))).scalars().all()
    assert events == [AuditEventType.LOGIN_FAILED]


@pytest.mark.asyncio
async def test_inactive_account_cannot_log_in(client, make_user, password):
    await make_user("gone@example.com", RoleName.AGENT, is_active=False)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "gone@example.com", "password": password}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Account is inactive"


@pytest.mark.asyncio
async def test_login_merges_public_ticket(client, db_session, make_user, password):
    user = await make_user("requester@example.com")
    issued = sign_public_token()
    db_session.add(
        Ticket(
            ticket_number="TKT-2025-0007",
            subject="Cannot print",
            description="Printer says no",
            requester_email="requester@example.com",
            public_token_id=issued.public_id,
        )
    )
    await db_session.commit()

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "requester@example.com", "password": password},
        headers={"x-public-token": issued.token},
    )

    assert response.status_code == 200
    assert response.json()["merged_tickets"] == 1

    listed = await client.get(
        "/api/v1/tickets",
        headers={"Authorization": f"Bearer {response.json()['access_token']}"},
    )
    [ticket] = listed.json()["tickets"]
    assert ticket["ticket_number"] == "TKT-2025-0007"
    assert ticket["requester_id"] == str(user.id)


@pytest.mark.asyncio
async def test_invalid_public_token_does_not_block_login(client, make_user, password):
    await make_user("requester@example.com")

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "requester@example.com", "password": password},
        headers={"x-public-token": "garbage"},
    )

    assert response.status_code == 200
    assert response.json()["merged_tickets"] == 0


@pytest.mark.asyncio
async def test_register_and_duplicate(client):
    payload = {"email": "new@example.com", "password": "long-enough-pw", "first_name": "New"}

    created = await client.post("/api/v1/auth/register", json=payload)
    duplicate = await client.post("/api/v1/auth/register", json=payload)

    assert created.status_code == 201
    assert created.json()["user"]["roles"] == ["END_USER"]
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_refresh_token_flow(client, make_user, password):
    await make_user("agent@example.com", RoleName.AGENT)
    login = await client.post(
        "/api/v1/auth/login", json={"email": "agent@example.com", "password": password}
    )

    refreshed = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": login.json()["refresh_token"]}
    )
    rejected = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": login.json()["access_token"]}
    )

    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]
    assert rejected.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_authentication(client):
    assert (await client.get("/api/v1/auth/me")).status_code == 401
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Token abc"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Authentication required"}


@pytest.mark.asyncio
async def test_public_session_lists_its_tickets(client, make_tenant):
    await make_tenant("helpdesk")
    token = (await client.post("/api/v1/public/token")).json()["token"]

    submitted = await client.post(
        "/api/v1/tenants/helpdesk/tickets",
        json={
            "subject": "Wifi down",
            "description": "Floor 3",
            "requester_email": "visitor@example.com",
        },
        headers={"x-public-token": token},
    )
    listed = await client.get("/api/v1/public/tickets", headers={"x-public-token": token})

    assert submitted.status_code == 201
    assert submitted.json()["public_token"] is None
    assert [t["subject"] for t in listed.json()["tickets"]] == ["Wifi down"]
    assert (await client.get("/api/v1/public/tickets")).status_code == 401
