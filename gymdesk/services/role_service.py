"""
services/role_service.py
------------------------
Role management and role → permission assignment for one company.

Protected roles (the company's "admin") are readable but never editable:
renaming, deleting or re-permissioning them is Forbidden for everyone.
Permission names are checked against the catalog before anything is
written, and the persisted `permissions` table is topped up from the
catalog whenever an assignment needs a row that does not exist yet.
"""

from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Conflict, Forbidden, InvalidRequest
from gymdesk.core.logging import get_logger
from gymdesk.core.permissions import DEFAULT_ROLE_PERMISSIONS, PermissionCatalog
from gymdesk.models.role import PermissionEntry, Role, RolePermission
from gymdesk.models.user import User
from gymdesk.schemas.role import RoleCreate, RoleSummary, RoleUpdate
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.authorization import ensure_role_mutable, is_admin, is_protected_role
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard

logger = get_logger(__name__)


async def sync_permission_catalog(
    db: AsyncSession, catalog: PermissionCatalog
) -> dict[str, str]:
    """
    Make sure every catalog permission has a row. Returns name → id.
    """
    result = await db.execute(select(PermissionEntry))
    existing = {row.name: row for row in result.scalars().all()}
    created = 0
    for permission in catalog.all():
        if permission.name in existing:
            continue
        entry = PermissionEntry(
            name=permission.name,
            description=permission.description,
            module=permission.module,
            category=permission.category.value,
        )
        db.add(entry)
        existing[permission.name] = entry
        created += 1
    if created:
        await db.flush()
        logger.info("Permission catalog synced", created=created)
    return {name: entry.id for name, entry in existing.items()}


class RoleService:

    @staticmethod
    async def _name_taken(
        db: AsyncSession, guard: TenantGuard, name: str, exclude_id: Optional[str] = None
    ) -> bool:
        stmt = guard.scope(
            select(Role.id).where(func.lower(Role.name) == name.strip().lower()), Role
        )
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def list_roles(db: AsyncSession, identity: Identity) -> list[RoleSummary]:
        guard = TenantGuard.for_identity(identity)
        permission_counts = (
            select(RolePermission.role_id, func.count(RolePermission.id).label("n"))
            .where(RolePermission.company_id == guard.tenant_id)
            .group_by(RolePermission.role_id)
            .subquery()
        )
        user_counts = (
            select(User.role_id, func.count(User.id).label("n"))
            .where(User.company_id == guard.tenant_id)
            .group_by(User.role_id)
            .subquery()
        )
        stmt = guard.scope(
            select(
                Role,
                func.coalesce(permission_counts.c.n, 0),
                func.coalesce(user_counts.c.n, 0),
            )
            .outerjoin(permission_counts, permission_counts.c.role_id == Role.id)
            .outerjoin(user_counts, user_counts.c.role_id == Role.id)
            .order_by(Role.name),
            Role,
        )
        result = await db.execute(stmt)
        return [
            RoleSummary(
                id=role.id,
                name=role.name,
                description=role.description,
                is_protected=role.is_protected,
                permission_count=permissions,
                user_count=users,
            )
            for role, permissions, users in result.all()
        ]

    @staticmethod
    async def get_role(db: AsyncSession, identity: Identity, role_id: str) -> Role:
        return await TenantGuard.for_identity(identity).get(db, Role, role_id, label="Role")

    @staticmethod
    async def create_role(
        db: AsyncSession,
        identity: Identity,
        data: RoleCreate,
        catalog: PermissionCatalog,
    ) -> Role:
        """
        New roles start with the default permission set.

        Raises:
            Forbidden: the name collides with a protected role name.
            Conflict:  the company already has a role with this name.
        """
        guard = TenantGuard.for_identity(identity)
        if is_protected_role(data.name):
            raise Forbidden(f"Role name '{data.name}' is reserved")
        if await RoleService._name_taken(db, guard, data.name):
            raise Conflict(f"Role '{data.name}' already exists")

        role = guard.stamp(Role(name=data.name, description=data.description))
        db.add(role)
        await db.flush()
        await RoleService._write_permissions(
            db, guard, role, DEFAULT_ROLE_PERMISSIONS, catalog, granted_by=identity.user_id
        )
        await AuditService.record_for(
            db, identity, AuditAction.CREATE, "role", role.id,
            f"Role {role.name} created by {identity.display_name}",
        )
        return role

    @staticmethod
    async def update_role(
        db: AsyncSession, identity: Identity, role_id: str, data: RoleUpdate
    ) -> Role:
        guard = TenantGuard.for_identity(identity)
        role = await guard.get(db, Role, role_id, label="Role")
        ensure_role_mutable(role)
        if is_protected_role(data.name):
            raise Forbidden(f"Role name '{data.name}' is reserved")
        if await RoleService._name_taken(db, guard, data.name, exclude_id=role.id):
            raise Conflict(f"Role '{data.name}' already exists")

        role.name = data.name
        role.description = data.description
        await db.flush()
        await AuditService.record_for(
            db, identity, AuditAction.UPDATE, "role", role.id,
            f"Role {role.name} updated by {identity.display_name}",
        )
        return role

    @staticmethod
    async def delete_role(db: AsyncSession, identity: Identity, role_id: str) -> None:
        guard = TenantGuard.for_identity(identity)
        role = await guard.get(db, Role, role_id, label="Role")
        ensure_role_mutable(role)

        in_use = await db.execute(
            guard.scope(select(func.count(User.id)).where(User.role_id == role.id), User)
        )
        if in_use.scalar_one():
            raise Conflict(f"Role '{role.name}' is assigned to staff and cannot be deleted")

        await db.execute(
            guard.scope(delete(RolePermission).where(RolePermission.role_id == role.id), RolePermission)
        )
        await db.delete(role)
        await db.flush()
        await AuditService.record_for(
            db, identity, AuditAction.DELETE, "role", role_id,
            f"Role {role.name} deleted by {identity.display_name}",
        )

    # ── Permissions ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_role_permissions(
        db: AsyncSession, identity: Identity, role_id: str, catalog: PermissionCatalog
    ) -> list[str]:
        """The admin role reports the whole catalog; it has no stored rows."""
        guard = TenantGuard.for_identity(identity)
        role = await guard.get(db, Role, role_id, label="Role")
        if is_admin(role.name):
            return sorted(catalog.names)
        result = await db.execute(
            guard.scope(
                select(PermissionEntry.name)
                .join(RolePermission, RolePermission.permission_id == PermissionEntry.id)
                .where(RolePermission.role_id == role.id),
                RolePermission,
            )
        )
        return sorted(name for name in result.scalars().all() if name in catalog)

    @staticmethod
    async def set_role_permissions(
        db: AsyncSession,
        identity: Identity,
        role_id: str,
        names: Iterable[str],
        catalog: PermissionCatalog,
    ) -> list[str]:
        """
        Replace a role's permission set.

        Raises:
            Forbidden:      the role is protected.
            InvalidRequest: any name is not in the catalog; nothing is written.
        """
        guard = TenantGuard.for_identity(identity)
        role = await guard.get(db, Role, role_id, label="Role")
        ensure_role_mutable(role)

        valid, invalid = catalog.validate(names)
        if invalid:
            raise InvalidRequest(f"Invalid permissions: {', '.join(invalid)}")

        await db.execute(
            guard.scope(delete(RolePermission).where(RolePermission.role_id == role.id), RolePermission)
        )
        granted = await RoleService._write_permissions(
            db, guard, role, valid, catalog, granted_by=identity.user_id
        )
        await AuditService.record_for(
            db, identity, AuditAction.UPDATE, "role", role.id,
            f"Permissions for role {role.name} set to {len(granted)} entries by {identity.display_name}",
        )
        logger.info(
            "Role permissions replaced",
            role_id=role.id,
            tenant_id=guard.tenant_id,
            count=len(granted),
        )
        return granted

    @staticmethod
    async def _write_permissions(
        db: AsyncSession,
        guard: TenantGuard,
        role: Role,
        names: Iterable[str],
        catalog: PermissionCatalog,
        granted_by: Optional[str] = None,
    ) -> list[str]:
        ids = await sync_permission_catalog(db, catalog)
        granted = sorted({name for name in names if name in ids})
        for name in granted:
            db.add(
                guard.stamp(
                    RolePermission(
                        role_id=role.id,
                        permission_id=ids[name],
                        granted_by=granted_by,
                    )
                )
            )
        await db.flush()
        return granted
