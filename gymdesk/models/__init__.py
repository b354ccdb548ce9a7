"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and Alembic, if added) can import
Base and discover all tables via a single import:

    from gymdesk.models import Base
"""

from gymdesk.db.base import Base
from gymdesk.models.tenant import Company
from gymdesk.models.user import SuperAdmin, User
from gymdesk.models.role import PermissionEntry, Role, RolePermission
from gymdesk.models.session import UserSession, VerificationToken
from gymdesk.models.member import Member, MembershipPlan
from gymdesk.models.membership import HoldHistory, Membership
from gymdesk.models.payment import Payment, PaymentTransaction
from gymdesk.models.audit import AuditLog

__all__ = [
    "Base",
    "Company",
    "SuperAdmin",
    "User",
    "PermissionEntry",
    "Role",
    "RolePermission",
    "UserSession",
    "VerificationToken",
    "Member",
    "MembershipPlan",
    "HoldHistory",
    "Membership",
    "Payment",
    "PaymentTransaction",
    "AuditLog",
]
