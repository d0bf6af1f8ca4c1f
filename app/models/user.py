"""User, role and role-grant models."""

import enum
import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean
from sqlalchemy import Enum as EnumType
from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.organization import Organization
    from app.models.tenant import TenantAssignment


class RoleName(str, enum.Enum):
    END_USER = "END_USER"
    AGENT = "AGENT"
    IT_MANAGER = "IT_MANAGER"
    ADMIN = "ADMIN"
    GLOBAL_ADMIN = "GLOBAL_ADMIN"


class Role(BaseModel):
    __tablename__ = "roles"

    name: Mapped[RoleName] = mapped_column(
        EnumType(RoleName, name="role_name"), nullable=False, unique=True
    )

    def __repr__(self) -> str:
        return f"<Role(name='{self.name.value}')>"


class UserRole(BaseModel):
    """A role granted to a user. Revoking a grant deletes the row."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="roles")
    role: Mapped["Role"] = relationship("Role", lazy="selectin")


class User(BaseModel):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization", back_populates="users"
    )
    roles: Mapped[list["UserRole"]] = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    assignments: Mapped[list["TenantAssignment"]] = relationship(
        "TenantAssignment", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def role_names(self) -> frozenset[RoleName]:
        return frozenset(grant.role.name for grant in self.roles)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
