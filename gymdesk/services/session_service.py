"""
services/session_service.py
---------------------------
Session manager: issue, resolve, and revoke session tokens.

A session is a signed token (see core/security.py) plus a server-side row
in `sessions`. Resolution needs both: a valid signature and unexpired
claims, and a live row whose user still belongs to an active company.
The role and company are re-read from the database on every resolution,
so a role change takes effect on the next request rather than at the next
login.

Super-admin tokens are the exception: they resolve to a synthetic
platform identity straight from the claims, with no tenant attached.

Resolution never raises. Anything that goes wrong (bad signature, expired,
revoked, database error) yields None so the caller can answer 401 uniformly.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Response
from jose import JWTError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.config import settings
from gymdesk.core.logging import get_logger
from gymdesk.core.security import (
    SUPER_ADMIN_ROLE,
    create_session_token,
    decode_session_token,
    digest,
)
from gymdesk.models.role import Role
from gymdesk.models.session import UserSession
from gymdesk.models.tenant import Company
from gymdesk.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """Who is calling: user, company and role for the current request."""

    user_id: str
    tenant_id: Optional[str]
    role_name: str
    display_name: str
    role_id: Optional[str] = None
    email: Optional[str] = None
    session_id: Optional[str] = None
    is_super_admin: bool = False


class SessionManager:

    @staticmethod
    async def create_session(
        db: AsyncSession,
        user_id: str,
        tenant_id: str,
        role: str,
    ) -> tuple[str, datetime]:
        """
        Mint a token and persist its session row.

        Returns:
            (token, expires_at); the caller sets the cookie.
        """
        token, expires_at = create_session_token(
            subject=user_id, tenant_id=tenant_id, role=role
        )
        db.add(
            UserSession(
                user_id=user_id,
                company_id=tenant_id,
                token_digest=digest(token),
                expires_at=expires_at,
            )
        )
        await db.flush()
        logger.info("Session created", user_id=user_id, tenant_id=tenant_id)
        return token, expires_at

    @staticmethod
    def create_super_admin_token(admin_id: str) -> tuple[str, datetime]:
        """Platform token; deliberately has no sessions row and no tenant."""
        return create_session_token(
            subject=admin_id,
            tenant_id=None,
            role=SUPER_ADMIN_ROLE,
            super_admin=True,
        )

    @staticmethod
    async def resolve_session(db: AsyncSession, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None

        try:
            payload = decode_session_token(token)
        except JWTError as exc:
            logger.warning("Session token rejected", error=str(exc))
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        if payload.get("is_super_admin"):
            return Identity(
                user_id=user_id,
                tenant_id=None,
                role_name=SUPER_ADMIN_ROLE,
                display_name="Super Administrator",
                is_super_admin=True,
            )

        try:
            result = await db.execute(
                select(
                    UserSession.id,
                    User.id,
                    User.company_id,
                    User.name,
                    User.email,
                    Role.id,
                    Role.name,
                )
                .join(User, User.id == UserSession.user_id)
                .join(Company, Company.id == User.company_id)
                .outerjoin(Role, Role.id == User.role_id)
                .where(
                    UserSession.token_digest == digest(token),
                    UserSession.expires_at > datetime.now(timezone.utc),
                    Company.is_active.is_(True),
                )
            )
            row = result.first()
        except SQLAlchemyError as exc:
            logger.error("Session lookup failed", error=str(exc), exc_info=True)
            return None

        if row is None:
            return None

        session_id, row_user_id, company_id, name, email, role_id, role_name = row
        if row_user_id != user_id:
            logger.warning("Session row does not match token subject", user_id=user_id)
            return None

        return Identity(
            user_id=row_user_id,
            tenant_id=company_id,
            role_name=role_name or "",
            display_name=name,
            role_id=role_id,
            email=email,
            session_id=session_id,
        )

    @staticmethod
    async def destroy_session(db: AsyncSession, token: Optional[str]) -> None:
        """Delete the session row for this token. Missing rows are fine."""
        if not token:
            return
        result = await db.execute(
            delete(UserSession).where(UserSession.token_digest == digest(token))
        )
        if result.rowcount:
            logger.info("Session destroyed")

    @staticmethod
    async def destroy_all_sessions(db: AsyncSession, user_id: str) -> int:
        """Force logout everywhere. Returns the number of sessions removed."""
        result = await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
        logger.info("All sessions destroyed", user_id=user_id, count=result.rowcount)
        return result.rowcount

    @staticmethod
    async def cleanup_expired_sessions(db: AsyncSession) -> int:
        result = await db.execute(
            delete(UserSession).where(UserSession.expires_at <= datetime.now(timezone.utc))
        )
        return result.rowcount


# ── Cookie helpers ────────────────────────────────────────────────────────────

def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        expires=expires_at,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
