"""
services/authorization.py
-------------------------
Authorization engine.

A resolved identity is turned into a RoleGrant, a closed two-case variant:

    AdminGrant: the company's "admin" role; every permission, no lookup.
    StaffGrant: any other role; exactly the permissions stored for it in
                  role_permissions, intersected with the live catalog so
                  stale names never match.

Every permission decision in the service goes through has_permission /
has_any_permission / has_all_permissions or AuthorizationService.authorize,
so the admin bypass lives here and nowhere else.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Forbidden
from gymdesk.core.logging import get_logger
from gymdesk.core.permissions import (
    ADMIN_ROLE_NAME,
    PROTECTED_ROLES,
    PermissionCatalog,
)
from gymdesk.models.role import PermissionEntry, Role, RolePermission
from gymdesk.services.session_service import Identity

logger = get_logger(__name__)


# ── Role predicates ───────────────────────────────────────────────────────────

def is_admin(role: Optional[str]) -> bool:
    """Case-insensitive match against the distinguished admin role name."""
    if not role:
        return False
    return role.strip().lower() == ADMIN_ROLE_NAME


def is_protected_role(role: Optional[str]) -> bool:
    if not role:
        return False
    return role.strip().lower() in PROTECTED_ROLES


# ── Pure checks ───────────────────────────────────────────────────────────────

def has_permission(
    assigned: Optional[Iterable[str]],
    required: str,
    role: Optional[str] = None,
) -> bool:
    if is_admin(role):
        return True
    if not assigned:
        return False
    return required in set(assigned)


def has_any_permission(
    assigned: Optional[Iterable[str]],
    required: Sequence[str],
    role: Optional[str] = None,
) -> bool:
    if is_admin(role):
        return True
    if not assigned:
        return False
    owned = set(assigned)
    return any(p in owned for p in required)


def has_all_permissions(
    assigned: Optional[Iterable[str]],
    required: Sequence[str],
    role: Optional[str] = None,
) -> bool:
    if is_admin(role):
        return True
    if not assigned:
        return False
    owned = set(assigned)
    return all(p in owned for p in required)


# ── Grants ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AdminGrant:
    name: str = ADMIN_ROLE_NAME


@dataclass(frozen=True)
class StaffGrant:
    name: str
    permissions: FrozenSet[str] = frozenset()


RoleGrant = Union[AdminGrant, StaffGrant]


def grant_for(
    role_name: Optional[str],
    assigned: Iterable[str],
    catalog: PermissionCatalog,
) -> RoleGrant:
    if is_admin(role_name):
        return AdminGrant(name=role_name or ADMIN_ROLE_NAME)
    live = frozenset(p for p in assigned if p in catalog)
    return StaffGrant(name=role_name or "", permissions=live)


def effective_permissions(grant: RoleGrant, catalog: PermissionCatalog) -> FrozenSet[str]:
    if isinstance(grant, AdminGrant):
        return catalog.names
    return grant.permissions


@dataclass(frozen=True)
class AuthorizationResult:
    allowed: bool
    effective_permissions: FrozenSet[str]
    grant: RoleGrant


# ── Database-backed engine ────────────────────────────────────────────────────

class AuthorizationService:

    @staticmethod
    async def load_assigned_permissions(
        db: AsyncSession, identity: Identity
    ) -> FrozenSet[str]:
        """
        Permission names stored for the identity's role in its own company.
        Platform identities and users without a role have none.
        """
        if identity.tenant_id is None or identity.role_id is None:
            return frozenset()
        result = await db.execute(
            select(PermissionEntry.name)
            .join(RolePermission, RolePermission.permission_id == PermissionEntry.id)
            .where(
                RolePermission.role_id == identity.role_id,
                RolePermission.company_id == identity.tenant_id,
            )
        )
        return frozenset(result.scalars().all())

    @staticmethod
    async def resolve_grant(
        db: AsyncSession, identity: Identity, catalog: PermissionCatalog
    ) -> RoleGrant:
        if is_admin(identity.role_name) and not identity.is_super_admin:
            return AdminGrant(name=identity.role_name)
        assigned = await AuthorizationService.load_assigned_permissions(db, identity)
        return grant_for(identity.role_name, assigned, catalog)

    @staticmethod
    async def authorize(
        db: AsyncSession,
        identity: Identity,
        required: Optional[str],
        catalog: PermissionCatalog,
    ) -> AuthorizationResult:
        """
        Decide whether identity holds `required`. None means the route only
        needs an authenticated caller.
        """
        grant = await AuthorizationService.resolve_grant(db, identity, catalog)
        effective = effective_permissions(grant, catalog)
        allowed = required is None or isinstance(grant, AdminGrant) or required in effective
        if not allowed:
            logger.info(
                "Permission denied",
                user_id=identity.user_id,
                tenant_id=identity.tenant_id,
                role=identity.role_name,
                required=required,
            )
        return AuthorizationResult(allowed=allowed, effective_permissions=effective, grant=grant)

    @staticmethod
    async def authorize_any(
        db: AsyncSession,
        identity: Identity,
        required: Sequence[str],
        catalog: PermissionCatalog,
    ) -> AuthorizationResult:
        grant = await AuthorizationService.resolve_grant(db, identity, catalog)
        effective = effective_permissions(grant, catalog)
        allowed = isinstance(grant, AdminGrant) or any(p in effective for p in required)
        if not allowed:
            logger.info(
                "Permission denied",
                user_id=identity.user_id,
                tenant_id=identity.tenant_id,
                role=identity.role_name,
                required_any=list(required),
            )
        return AuthorizationResult(allowed=allowed, effective_permissions=effective, grant=grant)


def ensure_role_mutable(role: Role) -> None:
    """
    Protected roles cannot be edited, deleted or re-permissioned by anyone,
    admin included.
    """
    if role.is_protected or is_protected_role(role.name):
        raise Forbidden(f"Cannot modify protected role '{role.name}'")
