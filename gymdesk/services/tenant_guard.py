"""
services/tenant_guard.py
------------------------
Structural tenant scoping for data access.

Every query over tenant-owned data goes through a TenantGuard built from
the resolved identity:

    guard = TenantGuard(identity.tenant_id)
    stmt  = guard.scope(select(Member), Member)          # adds company_id = ...
    row   = await guard.get(db, Member, member_id)       # NotFound if foreign

Constructing a guard without a tenant raises immediately, so an unscoped
query can never run by accident. Rows owned by another company are
reported as NotFound, never Forbidden, so ids from other tenants are
indistinguishable from ids that do not exist.
"""

from typing import Optional, Type, TypeVar

from sqlalchemy import Delete, Select, Update, select
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import NotFound, TenantContextMissing
from gymdesk.core.logging import get_logger
from gymdesk.services.session_service import Identity

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")
StatementT = TypeVar("StatementT", Select, Update, Delete)


def resolve_tenant_id(
    identity: Optional[Identity],
    header_tenant_id: Optional[str],
) -> Optional[str]:
    """
    Pick the tenant for a request.

    The session tenant always wins. The header is a fallback for requests
    that carry no tenant-bound session at all; when both are present and
    disagree the header is ignored.
    """
    header = header_tenant_id.strip() if header_tenant_id else None
    if identity is not None and identity.tenant_id is not None:
        if header and header != identity.tenant_id:
            logger.warning(
                "Tenant header ignored; session tenant takes precedence",
                session_tenant=identity.tenant_id,
                header_tenant=header,
            )
        return identity.tenant_id
    return header or None


class TenantGuard:

    def __init__(self, tenant_id: Optional[str]) -> None:
        if not tenant_id:
            raise TenantContextMissing()
        self.tenant_id = tenant_id

    @classmethod
    def for_identity(cls, identity: Identity) -> "TenantGuard":
        return cls(identity.tenant_id)

    def scope(self, statement: StatementT, model: Type[ModelT]) -> StatementT:
        """Append `model.company_id == tenant_id` to a select/update/delete."""
        return statement.where(model.company_id == self.tenant_id)  # type: ignore[attr-defined]

    def stamp(self, row: ModelT) -> ModelT:
        """Assign this tenant to a row that is about to be inserted."""
        row.company_id = self.tenant_id  # type: ignore[attr-defined]
        return row

    async def get(
        self,
        db: AsyncSession,
        model: Type[ModelT],
        row_id: str,
        *,
        for_update: bool = False,
        label: Optional[str] = None,
    ) -> ModelT:
        """
        Fetch one row by id inside this tenant.

        Raises:
            NotFound: the row does not exist or belongs to another company.
        """
        stmt = self.scope(select(model).where(model.id == row_id), model)  # type: ignore[attr-defined]
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound(f"{label or model.__name__} not found")
        return row
