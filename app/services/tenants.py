"""Tenant lookups and tenant assignment management."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models.tenant import Tenant, TenantAssignment


async def get_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", tenant_id)
    return tenant


async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Tenant:
    tenant = await db.scalar(
        select(Tenant).where(Tenant.slug == slug.lower(), Tenant.is_active.is_(True))
    )
    if tenant is None:
        raise NotFoundError("Tenant", slug)
    return tenant


async def list_assignments(db: AsyncSession, tenant_id: uuid.UUID) -> list[TenantAssignment]:
    result = await db.execute(
        select(TenantAssignment)
        .where(TenantAssignment.tenant_id == tenant_id)
        .order_by(TenantAssignment.created_at, TenantAssignment.id)
    )
    return list(result.scalars().all())


async def create_assignment(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    category: Optional[str] = None,
) -> TenantAssignment:
    """
    Assigns a user to a tenant (tenant-wide when `category` is None). Returns the
    existing row if the same assignment is already present.
    """
    category_filter = (
        TenantAssignment.category.is_(None)
        if category is None
        else TenantAssignment.category == category
    )
    existing = await db.scalar(
        select(TenantAssignment).where(
            TenantAssignment.tenant_id == tenant_id,
            TenantAssignment.user_id == user_id,
            category_filter,
        )
    )
    if existing is not None:
        return existing

    assignment = TenantAssignment(tenant_id=tenant_id, user_id=user_id, category=category)
    db.add(assignment)
    await db.commit()
    return assignment


async def delete_assignment(
    db: AsyncSession, tenant_id: uuid.UUID, assignment_id: uuid.UUID
) -> TenantAssignment:
    assignment = await db.get(TenantAssignment, assignment_id)
    if assignment is None or assignment.tenant_id != tenant_id:
        raise NotFoundError("Assignment", assignment_id)
    await db.delete(assignment)
    await db.commit()
    return assignment


def is_valid_category(tenant: Tenant, category: Optional[str]) -> bool:
    """A tenant without configured categories accepts any category."""
    if category is None or not tenant.categories:
        return True
    return category in {c.category for c in tenant.categories}
