"""
services/credential_service.py
------------------------------
Short-lived one-time verification codes (email verification, password
reset). Password hashing itself lives in core/security.py.

Issuing a code replaces any earlier code of the same purpose for the user,
so only the most recent email is ever valid.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.config import settings
from gymdesk.core.security import digest, generate_otp
from gymdesk.models.session import VerificationToken


class VerificationPurpose(str, Enum):
    email_verification = "email_verification"
    password_reset = "password_reset"


class CredentialService:

    @staticmethod
    async def issue_code(
        db: AsyncSession, user_id: str, purpose: VerificationPurpose
    ) -> str:
        """Create a fresh code and return it in plain text (for delivery only)."""
        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.user_id == user_id,
                VerificationToken.purpose == purpose.value,
            )
        )
        code = generate_otp()
        db.add(
            VerificationToken(
                user_id=user_id,
                code_digest=digest(code),
                purpose=purpose.value,
                expires_at=datetime.now(timezone.utc)
                + timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES),
            )
        )
        await db.flush()
        return code

    @staticmethod
    async def verify_code(
        db: AsyncSession, user_id: str, code: str, purpose: VerificationPurpose
    ) -> bool:
        result = await db.execute(
            select(VerificationToken.id).where(
                VerificationToken.user_id == user_id,
                VerificationToken.code_digest == digest(code.strip()),
                VerificationToken.purpose == purpose.value,
                VerificationToken.expires_at > datetime.now(timezone.utc),
            )
        )
        return result.first() is not None

    @staticmethod
    async def consume_code(
        db: AsyncSession, user_id: str, code: str, purpose: VerificationPurpose
    ) -> bool:
        """Verify and, on success, delete every code of that purpose."""
        if not await CredentialService.verify_code(db, user_id, code, purpose):
            return False
        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.user_id == user_id,
                VerificationToken.purpose == purpose.value,
            )
        )
        return True

    @staticmethod
    async def cleanup_expired_codes(db: AsyncSession) -> int:
        result = await db.execute(
            delete(VerificationToken).where(
                VerificationToken.expires_at <= datetime.now(timezone.utc)
            )
        )
        return result.rowcount
