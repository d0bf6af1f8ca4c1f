import uuid

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models.user import RoleName
from app.services.auth_context import resolve_auth_context
from app.utils.jwt_manager import create_access_token, sign_public_token


class UnavailableSession:
    async def execute(self, *args, **kwargs):
        raise SQLAlchemyError("database unavailable")


def bearer(token: str) -> str:
    return f"Bearer {token}"


@pytest.mark.asyncio
async def test_roles_come_from_grants_not_token_claims(db_session, make_organization, make_user):
    org = await make_organization("acme")
    user = await make_user("agent@acme.test", RoleName.AGENT, organization=org)
    token = create_access_token(user.id, user.email, [RoleName.GLOBAL_ADMIN])

    ctx = await resolve_auth_context(bearer(token), db_session)

    assert ctx is not None
    assert ctx.user_id == user.id
    assert ctx.roles == frozenset({RoleName.AGENT})
    assert ctx.organization_id == org.id
    assert ctx.is_global_admin is False


@pytest.mark.asyncio
async def test_global_admin_flag_follows_grant(db_session, make_user):
    user = await make_user("root@example.com", RoleName.GLOBAL_ADMIN)
    token = create_access_token(user.id, user.email, [])

    ctx = await resolve_auth_context(bearer(token), db_session)

    assert ctx.is_global_admin is True
    assert ctx.organization_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "header",
    [None, "", "Basic dXNlcjpwYXNz", "bearer lowercase-scheme", "Bearer ", "Bearer not-a-jwt"],
)
async def test_missing_or_malformed_header_yields_none(db_session, header):
    assert await resolve_auth_context(header, db_session) is None


@pytest.mark.asyncio
async def test_public_token_does_not_authenticate(db_session):
    issued = sign_public_token()

    assert await resolve_auth_context(bearer(issued.token), db_session) is None


@pytest.mark.asyncio
async def test_unknown_user_yields_none(db_session):
    token = create_access_token(uuid.uuid4(), "ghost@example.com", [RoleName.ADMIN])

    assert await resolve_auth_context(bearer(token), db_session) is None


@pytest.mark.asyncio
async def test_inactive_user_yields_none(db_session, make_user):
    user = await make_user("gone@example.com", RoleName.AGENT, is_active=False)
    token = create_access_token(user.id, user.email, [RoleName.AGENT])

    assert await resolve_auth_context(bearer(token), db_session) is None


@pytest.mark.asyncio
async def test_store_failure_yields_none():
    token = create_access_token(uuid.uuid4(), "user@example.com", [])

    assert await resolve_auth_context(bearer(token), UnavailableSession()) is None
