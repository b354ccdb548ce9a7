from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from gymdesk.core.errors import Conflict, InvalidRequest, InvalidTransition, NotFound
from gymdesk.models.audit import AuditLog
from gymdesk.models.member import Member
from gymdesk.models.membership import HoldHistory, Membership
from gymdesk.models.payment import Payment, PaymentTransaction
from gymdesk.schemas.member import MemberCreate, MemberUpdate
from gymdesk.schemas.membership import (
    MAX_HOLD_DURATION,
    LifecycleRequest,
    MembershipCreate,
    PlanCreate,
)
from gymdesk.services.membership_service import MemberService, MembershipService
from gymdesk.services.plan_service import PlanService

from conftest import make_company

START = date(2024, 1, 31)


async def _plan(db, owner, months=1, price="1000"):
    return await PlanService.create_plan(
        db,
        owner.identity,
        PlanCreate(plan_name=f"{months} month", duration_months=months, price=Decimal(price)),
    )


async def _register(db, owner, plan, phone="5550001", email=None, **membership):
    membership.setdefault("start_date", START)
    return await MemberService.register(
        db,
        owner.identity,
        MemberCreate(full_name="Asha Rao", phone_number=phone, email=email),
        MembershipCreate(plan_id=plan.id, **membership),
    )


async def _open_holds(db, membership_id):
    result = await db.execute(
        select(HoldHistory).where(
            HoldHistory.membership_id == membership_id, HoldHistory.resumed_at.is_(None)
        )
    )
    return result.scalars().all()


async def _audit_actions(db, entity_type):
    result = await db.execute(
        select(AuditLog.action).where(AuditLog.entity_type == entity_type)
    )
    return list(result.scalars().all())


def _hold(duration=14, unit="days", reason="Knee surgery"):
    return LifecycleRequest(action="hold", hold_reason=reason, hold_duration=duration, hold_unit=unit)


# ── Registration ──────────────────────────────────────────────────────────────

async def test_register_creates_membership_payment_and_audit(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan, amount_paid_now=Decimal("400"))

    assert member.member_number == 1
    assert membership.status == "active"
    assert membership.end_date == date(2024, 2, 29)

    payment = (await db.execute(select(Payment))).scalar_one()
    assert payment.total_amount == Decimal("1000.00")
    assert payment.paid_amount == Decimal("400.00")
    assert payment.payment_status == "partial"
    assert len((await db.execute(select(PaymentTransaction))).scalars().all()) == 1

    assert await _audit_actions(db, "member") == ["CREATE"]
    assert await _audit_actions(db, "payment") == []
    assert await _audit_actions(db, "membership") == []


async def test_member_numbers_are_sequential_per_company(db):
    gym_a = await make_company(db, "alpha")
    gym_b = await make_company(db, "bravo")
    first, _ = await MemberService.register(db, gym_a.identity, MemberCreate(full_name="A", phone_number="11111"))
    second, _ = await MemberService.register(db, gym_a.identity, MemberCreate(full_name="B", phone_number="22222"))
    other, _ = await MemberService.register(db, gym_b.identity, MemberCreate(full_name="C", phone_number="11111"))
    assert (first.member_number, second.member_number, other.member_number) == (1, 2, 1)


async def test_duplicate_phone_or_email_conflicts(db):
    owner = await make_company(db)
    await MemberService.register(
        db, owner.identity, MemberCreate(full_name="A", phone_number="11111", email="a@example.com")
    )
    with pytest.raises(Conflict):
        await MemberService.register(db, owner.identity, MemberCreate(full_name="B", phone_number="11111"))
    with pytest.raises(Conflict):
        await MemberService.register(
            db, owner.identity, MemberCreate(full_name="C", phone_number="33333", email="A@example.com")
        )


async def test_explicit_end_date_must_follow_start(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    with pytest.raises(InvalidRequest):
        await _register(db, owner, plan, end_date=START)


async def test_unknown_plan_is_not_found(db):
    owner = await make_company(db)
    other = await make_company(db, "bravo")
    foreign_plan = await _plan(db, other)
    with pytest.raises(NotFound):
        await _register(db, owner, foreign_plan)


async def test_update_member_rejects_taken_phone(db):
    owner = await make_company(db)
    await MemberService.register(db, owner.identity, MemberCreate(full_name="A", phone_number="11111"))
    second, _ = await MemberService.register(db, owner.identity, MemberCreate(full_name="B", phone_number="22222"))
    with pytest.raises(Conflict):
        await MemberService.update_member(db, owner.identity, second.id, MemberUpdate(phone_number="11111"))
    updated = await MemberService.update_member(
        db, owner.identity, second.id, MemberUpdate(full_name="Bea")
    )
    assert updated.full_name == "Bea"


async def test_delete_member_removes_history(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan, amount_paid_now=Decimal("100"))
    await MembershipService.apply_action(
        db, owner.identity, member.id, membership.id, _hold(), today=START + timedelta(days=1)
    )

    await MemberService.delete_member(db, owner.identity, member.id)

    for model in (Member, Membership, HoldHistory, Payment, PaymentTransaction):
        assert (await db.execute(select(model))).scalars().all() == []
    assert "DELETE" in await _audit_actions(db, "member")


# ── Lifecycle ─────────────────────────────────────────────────────────────────

async def test_hold_then_resume_extends_by_elapsed_days(db):
    owner = await make_company(db)
    plan = await _plan(db, owner, months=3)
    member, membership = await _register(db, owner, plan, start_date=date(2024, 3, 1))
    original_end = membership.end_date
    hold_day = date(2024, 3, 10)

    held = await MembershipService.apply_action(
        db, owner.identity, member.id, membership.id, _hold(duration=30), today=hold_day
    )
    assert held.message == "Membership put on hold successfully"
    assert membership.status == "on_hold"
    assert membership.is_on_hold is True
    assert membership.hold_end_date == hold_day + timedelta(days=30)
    assert len(await _open_holds(db, membership.id)) == 1

    resumed = await MembershipService.apply_action(
        db,
        owner.identity,
        member.id,
        membership.id,
        LifecycleRequest(action="resume"),
        today=hold_day + timedelta(days=7),
    )
    assert resumed.days_on_hold == 7
    assert membership.status == "active"
    assert membership.is_on_hold is False
    assert membership.end_date == original_end + timedelta(days=7)
    assert membership.hold_start_date is None
    assert await _open_holds(db, membership.id) == []

    closed = (await db.execute(select(HoldHistory))).scalar_one()
    assert closed.days_on_hold == 7
    assert closed.hold_end_date == hold_day + timedelta(days=7)
    assert closed.resumed_at is not None

    assert sorted(await _audit_actions(db, "membership")) == ["HOLD", "RESUME"]


async def test_double_hold_is_rejected_and_writes_nothing(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    on = START + timedelta(days=2)
    await MembershipService.apply_action(db, owner.identity, member.id, membership.id, _hold(), today=on)

    with pytest.raises(InvalidTransition) as excinfo:
        await MembershipService.apply_action(db, owner.identity, member.id, membership.id, _hold(), today=on)
    assert excinfo.value.message == "Membership is already on hold"
    assert len(await _open_holds(db, membership.id)) == 1
    assert (await _audit_actions(db, "membership")).count("HOLD") == 1


async def test_resume_active_membership_is_rejected(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    with pytest.raises(InvalidTransition):
        await MembershipService.apply_action(
            db, owner.identity, member.id, membership.id,
            LifecycleRequest(action="resume"), today=START,
        )


@pytest.mark.parametrize(
    "request_body",
    [
        LifecycleRequest(action="hold", hold_reason="", hold_duration=5, hold_unit="days"),
        LifecycleRequest(action="hold", hold_reason="Travel", hold_duration=0, hold_unit="days"),
        LifecycleRequest(action="hold", hold_reason="Travel", hold_duration=5, hold_unit="years"),
        LifecycleRequest(action="hold", hold_reason="Travel"),
    ],
)
async def test_invalid_hold_requests(db, request_body):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    with pytest.raises(InvalidTransition):
        await MembershipService.apply_action(
            db, owner.identity, member.id, membership.id, request_body, today=START
        )
    assert membership.status == "active"


async def test_hold_beyond_calendar_is_rejected_without_writing(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    overlong = LifecycleRequest.model_construct(
        action="hold", hold_reason="Travel", hold_duration=100_000_000, hold_unit="days"
    )
    with pytest.raises(InvalidTransition) as excinfo:
        await MembershipService.apply_action(
            db, owner.identity, member.id, membership.id, overlong, today=START
        )
    assert excinfo.value.message == "Hold duration is too long"
    assert membership.status == "active"
    assert await _open_holds(db, membership.id) == []


def test_hold_duration_is_bounded():
    with pytest.raises(ValidationError):
        LifecycleRequest(action="hold", hold_reason="Travel", hold_duration=MAX_HOLD_DURATION + 1, hold_unit="days")


async def test_month_hold_uses_clamp_rule(db):
    owner = await make_company(db)
    plan = await _plan(db, owner, months=6)
    member, membership = await _register(db, owner, plan)
    await MembershipService.apply_action(
        db, owner.identity, member.id, membership.id, _hold(duration=1, unit="months"), today=START
    )
    assert membership.hold_end_date == date(2024, 2, 29)


async def test_membership_of_other_member_not_found(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    stranger, _ = await MemberService.register(db, owner.identity, MemberCreate(full_name="Z", phone_number="99999"))
    with pytest.raises(NotFound):
        await MembershipService.apply_action(
            db, owner.identity, stranger.id, membership.id, _hold(), today=START
        )


async def test_cancel_on_hold_closes_hold(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    original_end = membership.end_date
    await MembershipService.apply_action(db, owner.identity, member.id, membership.id, _hold(), today=START)
    await MembershipService.apply_action(
        db, owner.identity, member.id, membership.id,
        LifecycleRequest(action="cancel"), today=START + timedelta(days=3),
    )
    assert membership.status == "cancelled"
    assert membership.end_date == original_end
    assert await _open_holds(db, membership.id) == []


async def test_auto_resume_uses_planned_end(db):
    owner = await make_company(db)
    plan = await _plan(db, owner, months=3)
    member, membership = await _register(db, owner, plan, start_date=date(2024, 3, 1))
    original_end = membership.end_date
    await MembershipService.apply_action(
        db, owner.identity, member.id, membership.id, _hold(duration=10), today=date(2024, 3, 5)
    )

    assert await MembershipService.auto_resume_due_holds(db, today=date(2024, 3, 14)) == 0
    assert await MembershipService.auto_resume_due_holds(db, today=date(2024, 3, 20)) == 1

    assert membership.status == "active"
    assert membership.end_date == original_end + timedelta(days=10)
    audit = (
        await db.execute(select(AuditLog).where(AuditLog.action == "RESUME"))
    ).scalar_one()
    assert audit.company_id == owner.identity.tenant_id
    assert audit.user_role == "system"


async def test_renew_and_history(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, _ = await _register(db, owner, plan)
    await MembershipService.renew(
        db, owner.identity, member.id,
        MembershipCreate(plan_id=plan.id, start_date=date(2024, 3, 1), payment_mode="Card"),
    )
    history = await MembershipService.list_for_member(db, owner.identity, member.id)
    assert len(history) == 2
    payments = (await db.execute(select(Payment.total_amount))).scalars().all()
    assert sorted(payments) == [Decimal("1000.00"), Decimal("1025.00")]
    assert await _audit_actions(db, "membership") == ["CREATE"]


async def test_delete_one_membership_keeps_the_rest(db):
    owner = await make_company(db)
    plan = await _plan(db, owner)
    member, first = await _register(db, owner, plan, amount_paid_now=Decimal("100"))
    second = await MembershipService.renew(
        db, owner.identity, member.id,
        MembershipCreate(plan_id=plan.id, start_date=date(2024, 3, 1), amount_paid_now=Decimal("50")),
    )
    await MembershipService.apply_action(
        db, owner.identity, member.id, first.id, _hold(), today=START
    )

    await MembershipService.delete_membership(db, owner.identity, member.id, first.id)

    remaining = await MembershipService.list_for_member(db, owner.identity, member.id)
    assert [m.id for m in remaining] == [second.id]
    assert (await db.execute(select(HoldHistory))).scalars().all() == []
    assert (await db.execute(select(Payment.membership_id))).scalars().all() == [second.id]
    assert (await db.execute(select(PaymentTransaction.membership_id))).scalars().all() == [second.id]
    assert "DELETE" in await _audit_actions(db, "membership")


async def test_delete_membership_checks_owner_and_tenant(db):
    owner = await make_company(db)
    other = await make_company(db, "bravo")
    plan = await _plan(db, owner)
    member, membership = await _register(db, owner, plan)
    stranger, _ = await MemberService.register(db, owner.identity, MemberCreate(full_name="Z", phone_number="99999"))

    with pytest.raises(NotFound):
        await MembershipService.delete_membership(db, owner.identity, stranger.id, membership.id)
    with pytest.raises(NotFound):
        await MembershipService.delete_membership(db, other.identity, member.id, membership.id)
    assert (await db.execute(select(Membership))).scalar_one().id == membership.id
