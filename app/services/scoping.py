"""
Tenant and organization scoping decisions.

Every function here answers a yes/no (or "which ids") question and never raises
for a denial: lack of access is a normal business outcome. Callers translate a
False or an empty set into a Forbidden error or an empty result.
"""

import uuid
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tenant import Tenant, TenantAssignment
from app.models.user import RoleName, User
from app.services.auth_context import get_user_with_roles

TENANT_MANAGER_ROLES = frozenset({RoleName.ADMIN, RoleName.IT_MANAGER})
PROTECTED_ROLES = frozenset({RoleName.ADMIN, RoleName.GLOBAL_ADMIN})


async def can_manage_tenant(
    db: AsyncSession, user_id: uuid.UUID, tenant_id: uuid.UUID
) -> bool:
    """
    True for a global admin, or for an ADMIN/IT_MANAGER whose organization owns
    the tenant.
    """
    user = await get_user_with_roles(db, user_id)
    if user is None:
        return False

    roles = user.role_names
    if RoleName.GLOBAL_ADMIN in roles:
        return True
    if roles.isdisjoint(TENANT_MANAGER_ROLES):
        return False

    tenant_org_id = await db.scalar(
        select(Tenant.organization_id).where(Tenant.id == tenant_id)
    )
    if tenant_org_id is None or user.organization_id is None:
        return False
    return tenant_org_id == user.organization_id


async def can_manage_agent_in_organization(
    db: AsyncSession, manager_id: uuid.UUID, agent_id: uuid.UUID
) -> bool:
    """
    Gate for password resets and enable/disable of agents.

    A global admin may manage any existing user. Otherwise the manager must hold
    IT_MANAGER or ADMIN, share an organization with the target, and the target
    must be an AGENT without ADMIN or GLOBAL_ADMIN.
    """
    manager = await get_user_with_roles(db, manager_id)
    if manager is None:
        return False

    agent = await get_user_with_roles(db, agent_id)
    if agent is None:
        return False

    roles = manager.role_names
    if RoleName.GLOBAL_ADMIN in roles:
        return True
    if roles.isdisjoint(TENANT_MANAGER_ROLES):
        return False

    agent_roles = agent.role_names
    if RoleName.AGENT not in agent_roles or not agent_roles.isdisjoint(PROTECTED_ROLES):
        return False

    if manager.organization_id is None or agent.organization_id is None:
        return False
    return manager.organization_id == agent.organization_id


async def can_manage_organization(
    db: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> bool:
    user = await get_user_with_roles(db, user_id)
    if user is None:
        return False
    roles = user.role_names
    if RoleName.GLOBAL_ADMIN in roles:
        return True
    return RoleName.ADMIN in roles and user.organization_id == organization_id


async def agent_visible_tenant_ids(
    db: AsyncSession, agent_user_id: uuid.UUID
) -> set[uuid.UUID]:
    """Tenants the user holds any assignment in, tenant-wide or per category."""
    result = await db.execute(
        select(TenantAssignment.tenant_id)
        .where(TenantAssignment.user_id == agent_user_id)
        .distinct()
    )
    return set(result.scalars().all())


async def users_in_tenants(
    db: AsyncSession, tenant_ids: Iterable[uuid.UUID]
) -> list[User]:
    """Users holding at least one assignment in any of the given tenants."""
    tenant_ids = list(tenant_ids)
    if not tenant_ids:
        return []
    member_ids = (
        select(TenantAssignment.user_id)
        .where(TenantAssignment.tenant_id.in_(tenant_ids))
        .distinct()
    )
    result = await db.execute(
        select(User).where(User.id.in_(member_ids)).order_by(User.email)
    )
    return list(result.scalars().all())
