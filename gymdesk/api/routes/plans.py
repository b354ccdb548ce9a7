"""
api/routes/plans.py
-------------------
Membership plans.

GET  /plans  Public listing. Staff get their own company's plans; callers
               without a session name the company in the tenant header.
POST /plans  Create a plan.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.db.session import get_db
from gymdesk.dependencies import get_request_tenant_guard, require_permission
from gymdesk.schemas.membership import PlanCreate, PlanRead
from gymdesk.services.plan_service import PlanService
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get("", response_model=list[PlanRead], summary="List membership plans")
async def list_plans(
    db: Annotated[AsyncSession, Depends(get_db)],
    guard: Annotated[TenantGuard, Depends(get_request_tenant_guard)],
) -> list[PlanRead]:
    plans = await PlanService.list_plans(db, guard)
    return [PlanRead.model_validate(p) for p in plans]


@router.post(
    "",
    response_model=PlanRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a membership plan",
)
async def create_plan(
    body: PlanCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_plans"))],
) -> PlanRead:
    plan = await PlanService.create_plan(db, identity, body)
    return PlanRead.model_validate(plan)
