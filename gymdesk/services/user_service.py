"""
services/user_service.py
------------------------
Business logic for authentication, staff management and credential flows.

All staff queries are scoped through TenantGuard to enforce strict data
isolation. Anything that changes a password or removes a user revokes
every session that user holds.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Conflict, InvalidRequest
from gymdesk.core.logging import get_logger
from gymdesk.core.security import hash_password, verify_password
from gymdesk.models.role import Role
from gymdesk.models.user import SuperAdmin, User
from gymdesk.schemas.user import StaffCreate
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.credential_service import CredentialService, VerificationPurpose
from gymdesk.services.session_service import Identity, SessionManager
from gymdesk.services.tenant_guard import TenantGuard

logger = get_logger(__name__)

# Verified against when the email is unknown so response time does not
# reveal whether an account exists.
_DUMMY_HASH = hash_password("gymdesk-timing-equaliser")


class UserService:

    @staticmethod
    async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
        """
        Verify credentials and return the User if valid, else None.
        Email lookup is case-insensitive.
        """
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        user = result.scalar_one_or_none()
        if user is None:
            verify_password(password, _DUMMY_HASH)
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    async def authenticate_super_admin(
        db: AsyncSession, email: str, password: str
    ) -> SuperAdmin | None:
        result = await db.execute(
            select(SuperAdmin).where(
                SuperAdmin.email == email.strip().lower(),
                SuperAdmin.is_active.is_(True),
            )
        )
        admin = result.scalar_one_or_none()
        if admin is None:
            verify_password(password, _DUMMY_HASH)
            return None
        if not verify_password(password, admin.hashed_password):
            return None
        admin.last_login_at = datetime.now(timezone.utc)
        return admin

    @staticmethod
    async def role_name(db: AsyncSession, user: User) -> str:
        if user.role_id is None:
            return ""
        result = await db.execute(
            select(Role.name).where(Role.id == user.role_id, Role.company_id == user.company_id)
        )
        return result.scalar_one_or_none() or ""

    @staticmethod
    async def mark_login(db: AsyncSession, user: User) -> None:
        user.last_login_at = datetime.now(timezone.utc)
        await db.flush()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    # ── Staff management ─────────────────────────────────────────────────────

    @staticmethod
    async def create_staff(db: AsyncSession, identity: Identity, data: StaffCreate) -> User:
        """
        Add a user to the caller's company. The role must belong to the same
        company; a foreign role id is reported as not found. Staff accounts
        start out verified.
        """
        guard = TenantGuard.for_identity(identity)
        role = await guard.get(db, Role, data.role_id, label="Role")
        user = guard.stamp(
            User(
                name=data.name,
                email=data.email.lower(),
                phone=data.phone,
                hashed_password=hash_password(data.password),
                role_id=role.id,
                is_verified=True,
            )
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"Email '{data.email}' is already registered")

        await AuditService.record_for(
            db,
            identity,
            AuditAction.CREATE,
            "staff",
            user.id,
            f"Staff {user.name} added with role {role.name} by {identity.display_name}",
        )
        await db.refresh(user)
        logger.info(
            "Staff created",
            new_user_id=user.id,
            role=role.name,
            tenant_id=guard.tenant_id,
        )
        return user

    @staticmethod
    async def list_staff(db: AsyncSession, identity: Identity) -> list[User]:
        guard = TenantGuard.for_identity(identity)
        result = await db.execute(guard.scope(select(User), User).order_by(User.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def remove_staff(db: AsyncSession, identity: Identity, user_id: str) -> None:
        guard = TenantGuard.for_identity(identity)
        if user_id == identity.user_id:
            raise InvalidRequest("You cannot remove your own account")
        user = await guard.get(db, User, user_id, label="Staff member")
        await SessionManager.destroy_all_sessions(db, user.id)
        await db.delete(user)
        await db.flush()
        await AuditService.record_for(
            db,
            identity,
            AuditAction.DELETE,
            "staff",
            user_id,
            f"Staff {user.name} removed by {identity.display_name}",
        )

    @staticmethod
    async def force_logout(db: AsyncSession, identity: Identity, user_id: str) -> int:
        guard = TenantGuard.for_identity(identity)
        user = await guard.get(db, User, user_id, label="Staff member")
        return await SessionManager.destroy_all_sessions(db, user.id)

    # ── Credentials ──────────────────────────────────────────────────────────

    @staticmethod
    async def change_password(
        db: AsyncSession, identity: Identity, current_password: str, new_password: str
    ) -> None:
        guard = TenantGuard.for_identity(identity)
        user = await guard.get(db, User, identity.user_id, label="User")
        if not verify_password(current_password, user.hashed_password):
            raise InvalidRequest("Current password is incorrect")
        user.hashed_password = hash_password(new_password)
        await SessionManager.destroy_all_sessions(db, user.id)
        await AuditService.record_for(
            db, identity, AuditAction.UPDATE, "user", user.id, f"Password changed by {user.name}"
        )

    @staticmethod
    async def request_password_reset(
        db: AsyncSession, email: str
    ) -> Optional[tuple[User, str]]:
        """Returns None for unknown emails; callers must not reveal that."""
        user = await UserService.get_by_email(db, email)
        if user is None:
            return None
        code = await CredentialService.issue_code(db, user.id, VerificationPurpose.password_reset)
        return user, code

    @staticmethod
    async def reset_password(
        db: AsyncSession, email: str, code: str, new_password: str
    ) -> User:
        user = await UserService.get_by_email(db, email)
        if user is None or not await CredentialService.consume_code(
            db, user.id, code, VerificationPurpose.password_reset
        ):
            raise InvalidRequest("Invalid or expired code")
        user.hashed_password = hash_password(new_password)
        await SessionManager.destroy_all_sessions(db, user.id)
        await db.flush()
        logger.info("Password reset", user_id=user.id, tenant_id=user.company_id)
        return user

    @staticmethod
    async def verify_email(db: AsyncSession, email: str, code: str) -> User:
        user = await UserService.get_by_email(db, email)
        if user is None or not await CredentialService.consume_code(
            db, user.id, code, VerificationPurpose.email_verification
        ):
            raise InvalidRequest("Invalid or expired code")
        user.is_verified = True
        await db.flush()
        return user

