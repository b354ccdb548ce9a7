"""
api/routes/members.py
---------------------
Members, their memberships, and the hold / resume / cancel endpoint.

POST   /members  Register a member (+ first membership).
GET    /members  List members.
GET    /members/{member_id}  Read one member.
PATCH  /members/{member_id}  Update contact details.
DELETE /members/{member_id}  Delete a member and their history.
GET    /members/{member_id}/memberships  Membership history.
POST   /members/{member_id}/memberships  Renew (new membership).
DELETE /members/{member_id}/memberships/{id}  Delete one membership.
POST   /members/{member_id}/memberships/{id}/hold  Lifecycle action.

Membership `status` in responses is the effective status: an active
membership whose end date has passed is reported as expired.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.db.session import get_db
from gymdesk.dependencies import require_permission
from gymdesk.models.membership import Membership
from gymdesk.schemas.member import (
    MemberRead,
    MemberRegister,
    MemberRegistered,
    MemberUpdate,
)
from gymdesk.schemas.membership import (
    LifecycleRequest,
    LifecycleResponse,
    MembershipCreate,
    MembershipRead,
)
from gymdesk.schemas.user import MessageResponse
from gymdesk.services.lifecycle import effective_status
from gymdesk.services.membership_service import (
    MemberService,
    MembershipService,
    state_of,
    utc_today,
)
from gymdesk.services.session_service import Identity

router = APIRouter(prefix="/members", tags=["Members"])


def membership_read(membership: Membership, today: date) -> MembershipRead:
    read = MembershipRead.model_validate(membership)
    return read.model_copy(
        update={"status": effective_status(state_of(membership), today).value}
    )


@router.post(
    "",
    response_model=MemberRegistered,
    status_code=status.HTTP_201_CREATED,
    summary="Register a member",
)
async def register_member(
    body: MemberRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("add_members"))],
) -> MemberRegistered:
    member, membership = await MemberService.register(db, identity, body.member, body.membership)
    return MemberRegistered(
        member=MemberRead.model_validate(member),
        membership=membership_read(membership, utc_today()) if membership else None,
    )


@router.get("", response_model=list[MemberRead], summary="List members")
async def list_members(
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_members"))],
) -> list[MemberRead]:
    members = await MemberService.list_members(db, identity)
    return [MemberRead.model_validate(m) for m in members]


@router.get("/{member_id}", response_model=MemberRead, summary="Read a member")
async def get_member(
    member_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_members"))],
) -> MemberRead:
    member = await MemberService.get_member(db, identity, member_id)
    return MemberRead.model_validate(member)


@router.patch("/{member_id}", response_model=MemberRead, summary="Update a member")
async def update_member(
    member_id: str,
    body: MemberUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("edit_members"))],
) -> MemberRead:
    member = await MemberService.update_member(db, identity, member_id, body)
    return MemberRead.model_validate(member)


@router.delete("/{member_id}", response_model=MessageResponse, summary="Delete a member")
async def delete_member(
    member_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("delete_members"))],
) -> MessageResponse:
    await MemberService.delete_member(db, identity, member_id)
    return MessageResponse(message="Member deleted")


@router.get(
    "/{member_id}/memberships",
    response_model=list[MembershipRead],
    summary="Membership history of a member",
)
async def list_memberships(
    member_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("view_members"))],
) -> list[MembershipRead]:
    memberships = await MembershipService.list_for_member(db, identity, member_id)
    today = utc_today()
    return [membership_read(m, today) for m in memberships]


@router.post(
    "/{member_id}/memberships",
    response_model=MembershipRead,
    status_code=status.HTTP_201_CREATED,
    summary="Renew: start a new membership for an existing member",
)
async def renew_membership(
    member_id: str,
    body: MembershipCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("add_members"))],
) -> MembershipRead:
    membership = await MembershipService.renew(db, identity, member_id, body)
    return membership_read(membership, utc_today())


@router.delete(
    "/{member_id}/memberships/{membership_id}",
    response_model=MessageResponse,
    summary="Delete one membership and its payment history",
)
async def delete_membership(
    member_id: str,
    membership_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("delete_members"))],
) -> MessageResponse:
    await MembershipService.delete_membership(db, identity, member_id, membership_id)
    return MessageResponse(message="Membership deleted successfully")


@router.post(
    "/{member_id}/memberships/{membership_id}/hold",
    response_model=LifecycleResponse,
    summary="Hold, resume or cancel a membership",
)
async def membership_action(
    member_id: str,
    membership_id: str,
    body: LifecycleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("edit_members"))],
) -> LifecycleResponse:
    """
    `hold` needs hold_reason, a positive hold_duration and a hold_unit of
    'days' or 'months'. `resume` extends the end date by the whole days
    actually spent on hold. Rejected transitions answer 400 with the
    reason in `message`.
    """
    outcome = await MembershipService.apply_action(db, identity, member_id, membership_id, body)
    return LifecycleResponse(
        message=outcome.message,
        days_extended=outcome.days_on_hold if outcome.action == "RESUME" else None,
    )
