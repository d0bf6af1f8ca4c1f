"""Tenant, tenant category and tenant assignment models."""

import re
import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.organization import Organization
    from app.models.user import User

SLUG_REGEX = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class Tenant(BaseModel):
    __tablename__ = "tenants"

    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_login: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization", back_populates="tenants"
    )
    categories: Mapped[list["TenantCategory"]] = relationship(
        "TenantCategory",
        back_populates="tenant",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    assignments: Mapped[list["TenantAssignment"]] = relationship(
        "TenantAssignment", back_populates="tenant", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug='{self.slug}')>"


class TenantCategory(BaseModel):
    __tablename__ = "tenant_categories"
    __table_args__ = (UniqueConstraint("tenant_id", "category"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="categories")


class TenantAssignment(BaseModel):
    """
    Links a user to a tenant, optionally for a single category.

    A NULL category makes the assignment tenant-wide: the user is eligible for
    tickets of every category in that tenant.
    """

    __tablename__ = "tenant_assignments"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", "category"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, comment="NULL means all categories."
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="assignments")
    user: Mapped["User"] = relationship("User", back_populates="assignments")

    def __repr__(self) -> str:
        return (
            f"<TenantAssignment(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"category={self.category!r})>"
        )


def validate_slug(mapper, connection, target):
    """
    Normalizes the tenant slug (strip + lowercase) and checks its format.
    """
    if target.slug is None:
        return
    slug = target.slug.strip().lower()
    if not SLUG_REGEX.match(slug):
        raise ValueError(f"Invalid tenant slug: '{target.slug}'")
    target.slug = slug


# Register event listeners
event.listen(Tenant, "before_insert", validate_slug)
event.listen(Tenant, "before_update", validate_slug)
