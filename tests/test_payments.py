from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from gymdesk.core.errors import InvalidRequest, NotFound
from gymdesk.models.payment import Payment, PaymentTransaction
from gymdesk.schemas.member import MemberCreate
from gymdesk.schemas.membership import MembershipCreate, PlanCreate
from gymdesk.services.payment_service import (
    PaymentService,
    PaymentStatus,
    derive_payment_status,
    payment_modes,
    quote_total,
    reprice,
)
from gymdesk.services.membership_service import MemberService
from gymdesk.services.plan_service import PlanService

from conftest import make_company

FEES = {"Cash": 0, "Card": 2.5, "UPI": 1.5}


@pytest.mark.parametrize(
    "paid, total, expected",
    [
        ("0", "1000", PaymentStatus.pending),
        ("0.01", "1000", PaymentStatus.partial),
        ("999.99", "1000", PaymentStatus.partial),
        ("1000", "1000", PaymentStatus.full),
        ("1200", "1000", PaymentStatus.full),
    ],
)
def test_derive_payment_status(paid, total, expected):
    assert derive_payment_status(Decimal(paid), Decimal(total)) is expected


def test_zero_total_with_nothing_paid_is_pending():
    assert derive_payment_status(0, 0) is PaymentStatus.pending


def test_quote_adds_fee_percent():
    quote = quote_total(Decimal("1000"), "card", FEES)
    assert quote.payment_mode == "Card"
    assert quote.processing_fee == Decimal("25.00")
    assert quote.total_amount == Decimal("1025.00")


def test_unknown_mode_rejected():
    with pytest.raises(InvalidRequest):
        quote_total(100, "Barter", FEES)


def test_switching_modes_never_compounds():
    payment = Payment(
        base_amount=Decimal("1000.00"),
        processing_fee=Decimal("0"),
        total_amount=Decimal("1000.00"),
        paid_amount=Decimal("0"),
        payment_mode="Cash",
        payment_status="pending",
    )
    reprice(payment, payment_mode="Card", fees=FEES)
    assert payment.total_amount == Decimal("1025.00")
    reprice(payment, payment_mode="Card", fees=FEES)
    assert payment.total_amount == Decimal("1025.00")
    reprice(payment, payment_mode="UPI", fees=FEES)
    assert payment.total_amount == Decimal("1015.00")
    reprice(payment, payment_mode="Cash", fees=FEES)
    assert payment.total_amount == Decimal("1000.00")
    assert payment.processing_fee == Decimal("0.00")


def test_base_change_requotes_fee():
    payment = Payment(
        base_amount=Decimal("1000.00"),
        processing_fee=Decimal("25.00"),
        total_amount=Decimal("1025.00"),
        paid_amount=Decimal("1025.00"),
        payment_mode="Card",
        payment_status="full",
    )
    reprice(payment, base_amount=Decimal("2000"), fees=FEES)
    assert payment.total_amount == Decimal("2050.00")
    assert payment.payment_status == "partial"


def test_payment_modes_listing():
    assert payment_modes(FEES) == [
        {"name": "Cash", "processing_fee": 0},
        {"name": "Card", "processing_fee": 2.5},
        {"name": "UPI", "processing_fee": 1.5},
    ]


async def _membership(db, owner, paid="0"):
    plan = await PlanService.create_plan(
        db, owner.identity, PlanCreate(plan_name="Monthly", duration_months=1, price=Decimal("1000"))
    )
    member, membership = await MemberService.register(
        db,
        owner.identity,
        MemberCreate(full_name="Asha Rao", phone_number="5550001"),
        MembershipCreate(plan_id=plan.id, start_date=date(2024, 1, 1), amount_paid_now=Decimal(paid)),
    )
    return membership


async def test_add_payment_moves_status(db):
    owner = await make_company(db)
    membership = await _membership(db, owner)

    payment = await PaymentService.add_payment(db, owner.identity, membership.id, "400", "Cash")
    assert payment.payment_status == "partial"
    payment = await PaymentService.add_payment(db, owner.identity, membership.id, "600", "UPI")
    assert payment.payment_status == "full"
    assert payment.paid_amount == Decimal("1000.00")

    ledger = (
        await db.execute(
            select(PaymentTransaction).where(PaymentTransaction.membership_id == membership.id)
        )
    ).scalars().all()
    assert sorted(t.payment_mode for t in ledger) == ["Cash", "UPI"]


async def test_add_payment_rejects_non_positive(db):
    owner = await make_company(db)
    membership = await _membership(db, owner)
    with pytest.raises(InvalidRequest):
        await PaymentService.add_payment(db, owner.identity, membership.id, "0", "Cash")


async def test_payment_of_other_company_not_found(db):
    owner = await make_company(db, "alpha")
    other = await make_company(db, "bravo")
    membership = await _membership(db, owner)
    with pytest.raises(NotFound):
        await PaymentService.add_payment(db, other.identity, membership.id, "100", "Cash")


async def test_change_mode_requotes_from_base(db):
    owner = await make_company(db)
    membership = await _membership(db, owner, paid="1000")
    payment = await PaymentService.change_payment_mode(db, owner.identity, membership.id, "Card")
    assert payment.base_amount == Decimal("1000.00")
    assert payment.total_amount == Decimal("1025.00")
    assert payment.payment_status == "partial"
    payment = await PaymentService.change_payment_mode(db, owner.identity, membership.id, "Cash")
    assert payment.total_amount == Decimal("1000.00")
    assert payment.payment_status == "full"
