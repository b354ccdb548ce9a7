"""
services/membership_service.py
------------------------------
Members, memberships and the hold / resume / cancel lifecycle.

Atomicity: every public method here only adds to the caller's session and
flushes. The request's get_db() dependency owns the transaction, so the
membership row, its hold-history row and the audit row are committed
together or not at all.

Serialization: lifecycle methods load the membership with SELECT ... FOR
UPDATE before validating the transition. Two concurrent hold requests on
the same membership therefore run one after the other, and the second sees
the first one's open hold and is rejected.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.errors import Conflict, InvalidRequest, InvalidTransition, NotFound
from gymdesk.core.logging import get_logger
from gymdesk.models.member import Member, MembershipPlan
from gymdesk.models.membership import HoldHistory, Membership
from gymdesk.models.payment import Payment, PaymentTransaction
from gymdesk.schemas.member import MemberCreate, MemberUpdate
from gymdesk.schemas.membership import LifecycleRequest, MembershipCreate
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.lifecycle import (
    Accepted,
    Cancel,
    Event,
    Hold,
    MembershipState,
    MembershipStatus,
    Rejected,
    Resume,
    plan_end_date,
    transition,
)
from gymdesk.services.payment_service import (
    derive_payment_status,
    quote_total,
    to_money,
)
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard

logger = get_logger(__name__)

_DUPLICATE_MEMBER = "A member with this email or phone number already exists"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def state_of(membership: Membership, open_hold: Optional[HoldHistory] = None) -> MembershipState:
    return MembershipState(
        status=MembershipStatus(membership.status),
        start_date=membership.start_date,
        end_date=membership.end_date,
        hold_start_date=membership.hold_start_date,
        hold_end_date=membership.hold_end_date,
        hold_reason=membership.hold_reason,
        open_hold_start=open_hold.hold_start_date if open_hold is not None else None,
    )


class MemberService:

    @staticmethod
    async def _ensure_unique(
        db: AsyncSession,
        guard: TenantGuard,
        email: Optional[str],
        phone_number: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> None:
        clauses = []
        if email:
            clauses.append(Member.email == email)
        if phone_number:
            clauses.append(Member.phone_number == phone_number)
        if not clauses:
            return
        stmt = guard.scope(select(Member.id).where(or_(*clauses)), Member)
        if exclude_id is not None:
            stmt = stmt.where(Member.id != exclude_id)
        if (await db.execute(stmt)).first() is not None:
            raise Conflict(_DUPLICATE_MEMBER)

    @staticmethod
    async def register(
        db: AsyncSession,
        identity: Identity,
        data: MemberCreate,
        membership: Optional[MembershipCreate] = None,
    ) -> tuple[Member, Optional[Membership]]:
        """
        Create a member and, optionally, their first membership + payment.
        Raises Conflict on duplicate email / phone within the company.
        """
        guard = TenantGuard.for_identity(identity)
        email = data.email.lower() if data.email else None
        await MemberService._ensure_unique(db, guard, email, data.phone_number)

        next_number = (
            await db.execute(
                guard.scope(select(func.coalesce(func.max(Member.member_number), 0)), Member)
            )
        ).scalar_one() + 1

        member = guard.stamp(
            Member(
                member_number=next_number,
                full_name=data.full_name,
                phone_number=data.phone_number,
                email=email,
                gender=data.gender,
                date_of_birth=data.date_of_birth,
                address=data.address,
                emergency_contact_name=data.emergency_contact_name,
                emergency_contact_phone=data.emergency_contact_phone,
            )
        )
        db.add(member)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(_DUPLICATE_MEMBER)

        created = None
        details = f"Member {member.full_name} created by {identity.display_name}"
        if membership is not None:
            created = await MembershipService.create_membership(
                db, identity, member, membership, audit=False
            )
            details = f"{details} with {_membership_summary(created)}"

        await AuditService.record_for(
            db, identity, AuditAction.CREATE, "member", member.id, details
        )
        await db.refresh(member)
        logger.info("Member registered", tenant_id=guard.tenant_id, member_id=member.id)
        return member, created

    @staticmethod
    async def get_member(db: AsyncSession, identity: Identity, member_id: str) -> Member:
        return await TenantGuard.for_identity(identity).get(db, Member, member_id, label="Member")

    @staticmethod
    async def list_members(db: AsyncSession, identity: Identity) -> list[Member]:
        guard = TenantGuard.for_identity(identity)
        result = await db.execute(
            guard.scope(select(Member), Member).order_by(Member.member_number)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_member(
        db: AsyncSession, identity: Identity, member_id: str, data: MemberUpdate
    ) -> Member:
        guard = TenantGuard.for_identity(identity)
        member = await guard.get(db, Member, member_id, for_update=True, label="Member")
        changes = data.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"]:
            changes["email"] = changes["email"].lower()
        await MemberService._ensure_unique(
            db, guard, changes.get("email"), changes.get("phone_number"), exclude_id=member.id
        )
        for field, value in changes.items():
            setattr(member, field, value)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(_DUPLICATE_MEMBER)

        await AuditService.record_for(
            db,
            identity,
            AuditAction.UPDATE,
            "member",
            member.id,
            f"Member {member.full_name} updated by {identity.display_name}",
        )
        return member

    @staticmethod
    async def delete_member(db: AsyncSession, identity: Identity, member_id: str) -> None:
        guard = TenantGuard.for_identity(identity)
        member = await guard.get(db, Member, member_id, for_update=True, label="Member")
        membership_ids = select(Membership.id).where(
            Membership.member_id == member.id, Membership.company_id == guard.tenant_id
        )

        await db.execute(
            guard.scope(delete(PaymentTransaction), PaymentTransaction).where(
                PaymentTransaction.member_id == member.id
            )
        )
        await db.execute(
            guard.scope(delete(Payment), Payment).where(Payment.membership_id.in_(membership_ids))
        )
        await db.execute(
            guard.scope(delete(HoldHistory), HoldHistory).where(
                HoldHistory.membership_id.in_(membership_ids)
            )
        )
        await db.execute(
            guard.scope(delete(Membership), Membership).where(Membership.member_id == member.id)
        )
        await db.execute(guard.scope(delete(Member), Member).where(Member.id == member.id))

        await AuditService.record_for(
            db,
            identity,
            AuditAction.DELETE,
            "member",
            member_id,
            f"Member {member.full_name} deleted by {identity.display_name}",
        )


class MembershipService:

    @staticmethod
    async def create_membership(
        db: AsyncSession,
        identity: Identity,
        member: Member,
        data: MembershipCreate,
        audit: bool = True,
    ) -> Membership:
        """
        Membership + payment (+ initial transaction) for an existing member
        row. With audit=False the caller records the single audit entry for
        the whole operation.
        """
        guard = TenantGuard.for_identity(identity)
        plan = await guard.get(db, MembershipPlan, data.plan_id, label="Membership plan")
        try:
            end_date = plan_end_date(data.start_date, plan.duration_months, data.end_date)
        except ValueError as exc:
            raise InvalidRequest(str(exc))

        quote = quote_total(
            plan.price if data.base_amount is None else data.base_amount,
            data.payment_mode,
        )
        paid = to_money(data.amount_paid_now)
        if paid < 0:
            raise InvalidRequest("Amount paid cannot be negative")

        membership = guard.stamp(
            Membership(
                member_id=member.id,
                plan_id=plan.id,
                start_date=data.start_date,
                end_date=end_date,
                status=MembershipStatus.active.value,
                is_on_hold=False,
                created_by=None if identity.is_super_admin else identity.user_id,
            )
        )
        db.add(membership)
        await db.flush()

        db.add(
            guard.stamp(
                Payment(
                    membership_id=membership.id,
                    base_amount=quote.base_amount,
                    processing_fee=quote.processing_fee,
                    total_amount=quote.total_amount,
                    paid_amount=paid,
                    payment_mode=quote.payment_mode,
                    payment_status=derive_payment_status(paid, quote.total_amount).value,
                    reference_number=data.reference_number,
                    next_due_date=data.next_due_date,
                )
            )
        )
        if paid > 0:
            db.add(
                guard.stamp(
                    PaymentTransaction(
                        member_id=member.id,
                        membership_id=membership.id,
                        transaction_type="membership_fee",
                        amount=paid,
                        payment_mode=quote.payment_mode,
                        receipt_number=data.reference_number,
                        created_by=identity.display_name,
                    )
                )
            )

        await db.flush()
        await db.refresh(membership)
        if audit:
            await AuditService.record_for(
                db,
                identity,
                AuditAction.CREATE,
                "membership",
                membership.id,
                f"{_membership_summary(membership, plan.plan_name)} for {member.full_name} "
                f"created by {identity.display_name}; initial payment {paid}",
            )
        return membership

    @staticmethod
    async def renew(
        db: AsyncSession, identity: Identity, member_id: str, data: MembershipCreate
    ) -> Membership:
        member = await MemberService.get_member(db, identity, member_id)
        return await MembershipService.create_membership(db, identity, member, data)

    @staticmethod
    async def list_for_member(
        db: AsyncSession, identity: Identity, member_id: str
    ) -> list[Membership]:
        guard = TenantGuard.for_identity(identity)
        await guard.get(db, Member, member_id, label="Member")
        result = await db.execute(
            guard.scope(select(Membership), Membership)
            .where(Membership.member_id == member_id)
            .order_by(Membership.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_membership(
        db: AsyncSession, identity: Identity, member_id: str, membership_id: str
    ) -> None:
        """Remove one membership with its payment, transactions and holds."""
        guard = TenantGuard.for_identity(identity)
        member = await guard.get(db, Member, member_id, label="Member")
        result = await db.execute(
            guard.scope(
                select(Membership).where(
                    Membership.id == membership_id,
                    Membership.member_id == member.id,
                ),
                Membership,
            ).with_for_update()
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            raise NotFound("Membership not found")

        await db.execute(
            guard.scope(delete(PaymentTransaction), PaymentTransaction).where(
                PaymentTransaction.membership_id == membership.id
            )
        )
        await db.execute(
            guard.scope(delete(Payment), Payment).where(Payment.membership_id == membership.id)
        )
        await db.execute(
            guard.scope(delete(HoldHistory), HoldHistory).where(
                HoldHistory.membership_id == membership.id
            )
        )
        await db.execute(
            guard.scope(delete(Membership), Membership).where(Membership.id == membership.id)
        )

        await AuditService.record_for(
            db,
            identity,
            AuditAction.DELETE,
            "membership",
            membership_id,
            f"Membership ({membership.start_date} to {membership.end_date}) of "
            f"{member.full_name} deleted by {identity.display_name}",
        )
        logger.info("Membership deleted", tenant_id=guard.tenant_id, membership_id=membership_id)

    @staticmethod
    async def open_hold(db: AsyncSession, membership: Membership) -> Optional[HoldHistory]:
        result = await db.execute(
            select(HoldHistory)
            .where(
                HoldHistory.membership_id == membership.id,
                HoldHistory.company_id == membership.company_id,
                HoldHistory.resumed_at.is_(None),
            )
            .order_by(HoldHistory.hold_start_date)
            .with_for_update()
        )
        return result.scalars().first()

    @staticmethod
    async def apply_action(
        db: AsyncSession,
        identity: Identity,
        member_id: str,
        membership_id: str,
        request: LifecycleRequest,
        today: Optional[date] = None,
    ) -> Accepted:
        """
        Run one lifecycle action (hold / resume / cancel) for a membership
        of the given member, inside the caller's transaction.

        Raises:
            NotFound: membership missing, foreign, or not this member's.
            InvalidTransition: the state machine rejected the action.
        """
        guard = TenantGuard.for_identity(identity)
        on = today or utc_today()

        result = await db.execute(
            guard.scope(
                select(Membership).where(
                    Membership.id == membership_id,
                    Membership.member_id == member_id,
                ),
                Membership,
            ).with_for_update()
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            raise NotFound("Membership not found")

        open_hold = await MembershipService.open_hold(db, membership)
        event = _event_from(request, on)
        outcome = transition(state_of(membership, open_hold), event)
        if isinstance(outcome, Rejected):
            raise InvalidTransition(outcome.reason)

        member = await guard.get(db, Member, member_id, label="Member")
        await MembershipService._apply(
            db,
            membership,
            open_hold,
            event,
            outcome,
            actor_id=None if identity.is_super_admin else identity.user_id,
        )
        await AuditService.record_for(
            db,
            identity,
            AuditAction(outcome.action),
            "membership",
            membership.id,
            _audit_details(outcome, member.full_name, identity.display_name),
        )
        await db.flush()
        logger.info(
            "Membership transition applied",
            tenant_id=guard.tenant_id,
            membership_id=membership.id,
            action=outcome.action,
            days_on_hold=outcome.days_on_hold,
        )
        return outcome

    @staticmethod
    async def _apply(
        db: AsyncSession,
        membership: Membership,
        open_hold: Optional[HoldHistory],
        event: Event,
        outcome: Accepted,
        actor_id: Optional[str],
    ) -> None:
        new = outcome.state
        membership.status = new.status.value
        membership.is_on_hold = new.status is MembershipStatus.on_hold
        membership.end_date = new.end_date
        membership.hold_start_date = new.hold_start_date
        membership.hold_end_date = new.hold_end_date
        membership.hold_reason = new.hold_reason

        if isinstance(event, Hold):
            db.add(
                HoldHistory(
                    company_id=membership.company_id,
                    membership_id=membership.id,
                    hold_start_date=new.hold_start_date,
                    hold_end_date=None,
                    hold_reason=new.hold_reason,
                    created_by=actor_id,
                )
            )
        elif open_hold is not None and outcome.closed_hold_on is not None:
            if open_hold.hold_end_date is None:
                open_hold.hold_end_date = outcome.closed_hold_on
            open_hold.days_on_hold = outcome.days_on_hold
            open_hold.resumed_at = datetime.now(timezone.utc)

    @staticmethod
    async def auto_resume_due_holds(
        db: AsyncSession,
        actor_name: str = "system",
        today: Optional[date] = None,
    ) -> int:
        """
        Platform sweep: resume every on-hold membership whose planned hold
        end date has arrived, as of that planned date. Runs across all
        companies; each resume is audited against its own company.
        """
        on = today or utc_today()
        result = await db.execute(
            select(Membership)
            .where(
                Membership.status == MembershipStatus.on_hold.value,
                Membership.hold_end_date.is_not(None),
                Membership.hold_end_date <= on,
            )
            .with_for_update()
        )
        resumed = 0
        for membership in result.scalars().all():
            open_hold = await MembershipService.open_hold(db, membership)
            event = Resume(on=membership.hold_end_date)
            outcome = transition(state_of(membership, open_hold), event)
            if isinstance(outcome, Rejected):
                logger.warning(
                    "Auto-resume skipped",
                    membership_id=membership.id,
                    reason=outcome.reason,
                )
                continue
            await MembershipService._apply(db, membership, open_hold, event, outcome, actor_id=None)
            await AuditService.record(
                db,
                tenant_id=membership.company_id,
                action=AuditAction.RESUME,
                entity_type="membership",
                entity_id=membership.id,
                details=f"Membership auto-resumed by {actor_name}. {outcome.message}",
                user_role="system",
            )
            resumed += 1
        await db.flush()
        logger.info("Auto-resume sweep finished", resumed=resumed)
        return resumed


def _event_from(request: LifecycleRequest, on: date) -> Event:
    if request.action == "hold":
        return Hold(
            reason=request.hold_reason or "",
            duration=request.hold_duration if request.hold_duration is not None else 0,
            unit=request.hold_unit or "days",
            on=on,
        )
    if request.action == "resume":
        return Resume(on=on)
    return Cancel(on=on)


def _membership_summary(membership: Membership, plan_name: Optional[str] = None) -> str:
    label = f"{plan_name} membership" if plan_name else "membership"
    return f"{label} ({membership.start_date} to {membership.end_date})"


def _audit_details(outcome: Accepted, member_name: str, actor: str) -> str:
    if outcome.action == "HOLD":
        state = outcome.state
        return (
            f"Membership of {member_name} put on hold by {actor} until "
            f"{state.hold_end_date}: {state.hold_reason}"
        )
    if outcome.action == "RESUME":
        return (
            f"Membership of {member_name} resumed by {actor}; "
            f"end date extended by {outcome.days_on_hold} days"
        )
    return f"Membership of {member_name} cancelled by {actor}"
