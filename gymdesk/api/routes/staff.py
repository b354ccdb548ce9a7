"""
api/routes/staff.py
-------------------
Staff management within the caller's company.

POST   /staff  Create a staff user with a company role.
GET    /staff  List staff.
DELETE /staff/{user_id}  Remove a staff user (sessions revoked first).
POST   /staff/{user_id}/logout  Force logout everywhere.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.db.session import get_db
from gymdesk.dependencies import require_permission
from gymdesk.schemas.user import MessageResponse, StaffCreate, UserRead
from gymdesk.services.session_service import Identity
from gymdesk.services.user_service import UserService

router = APIRouter(prefix="/staff", tags=["Staff"])


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a staff user in the current company",
)
async def create_staff(
    body: StaffCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("add_staff"))],
) -> UserRead:
    """
    The company comes from the caller's session; the role must belong to
    that company or the request fails with 404.
    """
    user = await UserService.create_staff(db, identity, body)
    return UserRead.model_validate(user)


@router.get("", response_model=list[UserRead], summary="List staff")
async def list_staff(
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_staff"))],
) -> list[UserRead]:
    users = await UserService.list_staff(db, identity)
    return [UserRead.model_validate(u) for u in users]


@router.delete("/{user_id}", response_model=MessageResponse, summary="Remove a staff user")
async def remove_staff(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("delete_staff"))],
) -> MessageResponse:
    await UserService.remove_staff(db, identity, user_id)
    return MessageResponse(message="Staff member removed")


@router.post(
    "/{user_id}/logout",
    response_model=MessageResponse,
    summary="Force logout a staff user",
)
async def force_logout(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("edit_staff"))],
) -> MessageResponse:
    count = await UserService.force_logout(db, identity, user_id)
    return MessageResponse(message=f"Revoked {count} session(s)")
