"""Exports all models for easy access."""

from .audit import AuditConfig, AuditEventType, AuditLog
from .base import Base, BaseModel
from .notification import Notification, NotificationPreference, NotificationType
from .organization import Organization
from .tenant import Tenant, TenantAssignment, TenantCategory
from .ticket import OPEN_STATUSES, Ticket, TicketPriority, TicketStatus
from .user import Role, RoleName, User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "Organization",
    "Tenant",
    "TenantCategory",
    "TenantAssignment",
    "User",
    "Role",
    "RoleName",
    "UserRole",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "OPEN_STATUSES",
    "AuditLog",
    "AuditConfig",
    "AuditEventType",
    "Notification",
    "NotificationPreference",
    "NotificationType",
]
