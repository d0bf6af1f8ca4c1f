"""User accounts: credentials, registration and manager actions on agents."""

import uuid
from dataclasses import dataclass
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AuthenticationError, ConflictError, NotFoundError
from app.models.user import Role, RoleName, User, UserRole
from app.services.auth_context import get_user_with_roles
from app.services.scoping import users_in_tenants
from app.settings import settings
from app.utils.jwt_manager import create_access_token, create_refresh_token


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.PASSWORD_HASH_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def issue_tokens(user: User) -> AuthResult:
    return AuthResult(
        user=user,
        access_token=create_access_token(user.id, user.email, user.role_names),
        refresh_token=create_refresh_token(user.id, user.email),
    )


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.email == email.lower()))


async def authenticate_user(db: AsyncSession, email: str, password: str) -> AuthResult:
    user = await get_user_by_email(db, email)
    if user is None or not user.password_hash:
        raise AuthenticationError()
    if not user.is_active:
        raise AuthenticationError("Account is inactive")
    if not verify_password(password, user.password_hash):
        raise AuthenticationError()
    return issue_tokens(user)


async def get_or_create_role(db: AsyncSession, name: RoleName) -> Role:
    role = await db.scalar(select(Role).where(Role.name == name))
    if role is None:
        role = Role(name=name)
        db.add(role)
        await db.flush()
    return role


async def create_user(
    db: AsyncSession,
    email: str,
    password: Optional[str],
    roles: tuple[RoleName, ...] = (RoleName.END_USER,),
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    organization_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> User:
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("User with this email already exists")

    user = User(
        email=email.lower(),
        password_hash=hash_password(password) if password else None,
        first_name=first_name,
        last_name=last_name,
        organization_id=organization_id,
        is_active=is_active,
        roles=[],
    )
    for name in roles:
        user.roles.append(UserRole(role=await get_or_create_role(db, name)))
    db.add(user)
    await db.commit()
    return user


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> AuthResult:
    user = await create_user(
        db, email, password, first_name=first_name, last_name=last_name
    )
    return issue_tokens(user)


async def require_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await get_user_with_roles(db, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def set_user_active(db: AsyncSession, user_id: uuid.UUID, is_active: bool) -> User:
    user = await require_user(db, user_id)
    user.is_active = is_active
    await db.commit()
    return user


async def reset_user_password(
    db: AsyncSession, user_id: uuid.UUID, new_password: str
) -> User:
    user = await require_user(db, user_id)
    user.password_hash = hash_password(new_password)
    await db.commit()
    return user


async def list_tenant_users(
    db: AsyncSession,
    visible_tenant_ids: set[uuid.UUID],
    tenant_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
) -> list[User]:
    """
    Users sharing a tenant with the caller. A `tenant_id` outside the caller's
    visible tenants yields an empty list.
    """
    if tenant_id is not None:
        if tenant_id not in visible_tenant_ids:
            return []
        visible_tenant_ids = {tenant_id}

    users = await users_in_tenants(db, visible_tenant_ids)
    if search:
        needle = search.lower()
        users = [
            u
            for u in users
            if needle in u.email.lower()
            or needle in (u.first_name or "").lower()
            or needle in (u.last_name or "").lower()
        ]
    return users
