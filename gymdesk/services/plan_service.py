"""
services/plan_service.py
------------------------
Membership plans offered by one company.
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Conflict
from gymdesk.core.logging import get_logger
from gymdesk.models.member import MembershipPlan
from gymdesk.schemas.membership import PlanCreate
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard

logger = get_logger(__name__)


class PlanService:

    @staticmethod
    async def list_plans(db: AsyncSession, guard: TenantGuard) -> list[MembershipPlan]:
        """Takes a guard rather than an identity: the listing is also served
        to anonymous callers that name their company in the tenant header."""
        result = await db.execute(
            guard.scope(select(MembershipPlan), MembershipPlan).order_by(
                MembershipPlan.duration_months, MembershipPlan.plan_name
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_plan(db: AsyncSession, identity: Identity, data: PlanCreate) -> MembershipPlan:
        guard = TenantGuard.for_identity(identity)
        name = data.plan_name.strip()
        taken = await db.execute(
            guard.scope(
                select(MembershipPlan.id).where(
                    func.lower(MembershipPlan.plan_name) == name.lower()
                ),
                MembershipPlan,
            )
        )
        if taken.first() is not None:
            raise Conflict(f"Plan '{name}' already exists")

        plan = guard.stamp(
            MembershipPlan(
                plan_name=name,
                duration_months=data.duration_months,
                price=data.price,
            )
        )
        db.add(plan)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"Plan '{name}' already exists")

        await AuditService.record_for(
            db, identity, AuditAction.CREATE, "plan", plan.id,
            f"Plan {plan.plan_name} created by {identity.display_name}",
        )
        await db.refresh(plan)
        logger.info("Plan created", tenant_id=guard.tenant_id, plan_id=plan.id)
        return plan
