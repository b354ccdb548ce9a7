"""
services/audit_service.py
-------------------------
Append-only audit sink.

Rows are added to the caller's session so they commit or roll back with
the operation they describe; an audit row never outlives a failed change.
"""

from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.logging import get_logger
from gymdesk.models.audit import AuditLog
from gymdesk.services.session_service import Identity

logger = get_logger(__name__)


class AuditAction(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    HOLD = "HOLD"
    RESUME = "RESUME"
    CANCEL = "CANCEL"


class AuditService:

    @staticmethod
    async def record(
        db: AsyncSession,
        *,
        tenant_id: str,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        details: str,
        user_role: str,
        user_id: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            company_id=tenant_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            user_role=user_role or "staff",
            user_id=user_id,
        )
        db.add(entry)
        await db.flush()
        logger.info(
            "Audit recorded",
            tenant_id=tenant_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        return entry

    @staticmethod
    async def record_for(
        db: AsyncSession,
        identity: Identity,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        details: str,
    ) -> AuditLog:
        """Shortcut when the actor is the current request's identity."""
        return await AuditService.record(
            db,
            tenant_id=identity.tenant_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            user_role=identity.role_name,
            user_id=None if identity.is_super_admin else identity.user_id,
        )
