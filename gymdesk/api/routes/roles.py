"""
api/routes/roles.py
-------------------
Roles and the permission catalog.

GET    /permissions  The catalog, grouped by module.
GET    /roles  Roles with permission and user counts.
POST   /roles  Create a role.
PUT    /roles/{role_id}  Rename / describe a role.
DELETE /roles/{role_id}  Delete an unused role.
GET    /roles/{role_id}/permissions  A role's permission names.
PUT    /roles/{role_id}/permissions  Replace a role's permission set.

Protected roles answer 403 to every mutation, whoever asks.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.permissions import PermissionCatalog, format_permission_name, get_permission_catalog
from gymdesk.db.session import get_db
from gymdesk.dependencies import require_permission
from gymdesk.schemas.role import (
    ModuleRead,
    PermissionRead,
    RoleCreate,
    RolePermissionsRead,
    RolePermissionsUpdate,
    RoleRead,
    RoleSummary,
    RoleUpdate,
)
from gymdesk.schemas.user import MessageResponse
from gymdesk.services.role_service import RoleService
from gymdesk.services.session_service import Identity

router = APIRouter(tags=["Roles"])


@router.get("/permissions", response_model=list[ModuleRead], summary="Permission catalog")
async def list_permissions(
    _: Annotated[Identity, Depends(require_permission("view_roles"))],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> list[ModuleRead]:
    return [
        ModuleRead(
            key=module.key,
            name=module.name,
            description=module.description,
            permissions=[
                PermissionRead(
                    name=p.name,
                    label=format_permission_name(p.name),
                    description=p.description,
                    module=p.module,
                    category=p.category.value,
                )
                for p in module.permissions
            ],
        )
        for module in catalog.modules.values()
    ]


@router.get("/roles", response_model=list[RoleSummary], summary="List roles")
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_roles"))],
) -> list[RoleSummary]:
    return await RoleService.list_roles(db, identity)


@router.post(
    "/roles",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role",
)
async def create_role(
    body: RoleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_roles"))],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> RoleRead:
    role = await RoleService.create_role(db, identity, body, catalog)
    return RoleRead.model_validate(role)


@router.put("/roles/{role_id}", response_model=RoleRead, summary="Update a role")
async def update_role(
    role_id: str,
    body: RoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_roles"))],
) -> RoleRead:
    role = await RoleService.update_role(db, identity, role_id, body)
    return RoleRead.model_validate(role)


@router.delete("/roles/{role_id}", response_model=MessageResponse, summary="Delete a role")
async def delete_role(
    role_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_roles"))],
) -> MessageResponse:
    await RoleService.delete_role(db, identity, role_id)
    return MessageResponse(message="Role deleted")


@router.get(
    "/roles/{role_id}/permissions",
    response_model=RolePermissionsRead,
    summary="Permissions assigned to a role",
)
async def get_role_permissions(
    role_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_roles"))],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> RolePermissionsRead:
    names = await RoleService.get_role_permissions(db, identity, role_id, catalog)
    return RolePermissionsRead(role_id=role_id, permissions=names)


@router.put(
    "/roles/{role_id}/permissions",
    response_model=RolePermissionsRead,
    summary="Replace a role's permissions",
)
async def set_role_permissions(
    role_id: str,
    body: RolePermissionsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_roles"))],
    catalog: Annotated[PermissionCatalog, Depends(get_permission_catalog)],
) -> RolePermissionsRead:
    names = await RoleService.set_role_permissions(
        db, identity, role_id, body.permissions, catalog
    )
    return RolePermissionsRead(role_id=role_id, permissions=names)
