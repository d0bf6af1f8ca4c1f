"""
Authorization guards.

Role checks are set membership over the resolved AuthContext; no rank order is
implied between roles. Each HTTP operation looks up its accepted role set in
OPERATION_ROLES instead of listing roles inline.
"""

import enum
import uuid
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import Forbidden, Unauthorized
from app.models.user import RoleName
from app.services import scoping
from app.services.auth_context import AuthContext


class Operation(str, enum.Enum):
    CREATE_TICKET = "create_ticket"
    UPDATE_TICKET = "update_ticket"
    ASSIGN_TICKET = "assign_ticket"
    ESCALATE_TICKET = "escalate_ticket"
    MANAGE_TENANT_ASSIGNMENTS = "manage_tenant_assignments"
    MANAGE_AGENTS = "manage_agents"
    LIST_TENANT_USERS = "list_tenant_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    CONFIGURE_AUDIT = "configure_audit"


_ALL_ROLES = frozenset(RoleName)
_STAFF = frozenset({RoleName.AGENT, RoleName.IT_MANAGER, RoleName.ADMIN, RoleName.GLOBAL_ADMIN})
_MANAGERS = frozenset({RoleName.IT_MANAGER, RoleName.ADMIN, RoleName.GLOBAL_ADMIN})
_ADMINS = frozenset({RoleName.ADMIN, RoleName.GLOBAL_ADMIN})

OPERATION_ROLES: dict[Operation, frozenset[RoleName]] = {
    Operation.CREATE_TICKET: _ALL_ROLES,
    Operation.UPDATE_TICKET: _STAFF,
    Operation.ASSIGN_TICKET: _MANAGERS,
    Operation.ESCALATE_TICKET: _STAFF,
    Operation.MANAGE_TENANT_ASSIGNMENTS: _MANAGERS,
    Operation.MANAGE_AGENTS: _MANAGERS,
    Operation.LIST_TENANT_USERS: frozenset({RoleName.AGENT}),
    Operation.VIEW_AUDIT_LOGS: _MANAGERS,
    Operation.CONFIGURE_AUDIT: _ADMINS,
}


def require_auth(ctx: Optional[AuthContext]) -> AuthContext:
    if ctx is None:
        raise Unauthorized()
    return ctx


def require_role(ctx: Optional[AuthContext], role: RoleName) -> AuthContext:
    ctx = require_auth(ctx)
    if not ctx.has_role(role):
        raise Forbidden()
    return ctx


def require_any_role(
    ctx: Optional[AuthContext], roles: Iterable[RoleName]
) -> AuthContext:
    ctx = require_auth(ctx)
    if not ctx.has_any_role(roles):
        raise Forbidden()
    return ctx


def require_operation(ctx: Optional[AuthContext], operation: Operation) -> AuthContext:
    return require_any_role(ctx, OPERATION_ROLES[operation])


def require_organization_access(
    ctx: Optional[AuthContext], organization_id: Optional[uuid.UUID]
) -> AuthContext:
    ctx = require_auth(ctx)
    if ctx.is_global_admin:
        return ctx
    if ctx.organization_id is None or ctx.organization_id != organization_id:
        raise Forbidden("No access to this organization")
    return ctx


async def require_tenant_access(
    ctx: Optional[AuthContext], tenant_id: uuid.UUID, db: AsyncSession
) -> AuthContext:
    """Managers of the tenant and users assigned to it may act on it."""
    ctx = require_auth(ctx)
    if ctx.is_global_admin:
        return ctx
    if tenant_id in await scoping.agent_visible_tenant_ids(db, ctx.user_id):
        return ctx
    if await scoping.can_manage_tenant(db, ctx.user_id, tenant_id):
        return ctx
    raise Forbidden("No access to this tenant")


async def require_tenant_management(
    ctx: Optional[AuthContext], tenant_id: uuid.UUID, db: AsyncSession
) -> AuthContext:
    ctx = require_auth(ctx)
    if not await scoping.can_manage_tenant(db, ctx.user_id, tenant_id):
        raise Forbidden("You can only manage tenants in your organization")
    return ctx


async def require_agent_management(
    ctx: Optional[AuthContext], agent_id: uuid.UUID, db: AsyncSession
) -> AuthContext:
    ctx = require_auth(ctx)
    if not await scoping.can_manage_agent_in_organization(db, ctx.user_id, agent_id):
        raise Forbidden("You can only manage agents in your organization")
    return ctx


async def require_organization_management(
    ctx: Optional[AuthContext], organization_id: uuid.UUID, db: AsyncSession
) -> AuthContext:
    """An ADMIN of the organization, or a global admin, may change its settings."""
    ctx = require_auth(ctx)
    if not await scoping.can_manage_organization(db, ctx.user_id, organization_id):
        raise Forbidden("You can only manage your own organization")
    return ctx
