"""
services/payment_service.py
---------------------------
Payment status derivation, processing-fee quoting, and payment recording.

Fee rule: total = base + round(base * fee% / 100, 2), always computed from
the stored base amount. Switching payment mode or changing the base fee
re-quotes from the base, so a fee is never charged on top of a fee.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.core.config import settings
from gymdesk.core.errors import InvalidRequest, NotFound
from gymdesk.core.logging import get_logger
from gymdesk.models.membership import Membership
from gymdesk.models.payment import Payment, PaymentTransaction
from gymdesk.services.audit_service import AuditAction, AuditService
from gymdesk.services.session_service import Identity
from gymdesk.services.tenant_guard import TenantGuard

logger = get_logger(__name__)

Amount = Union[Decimal, int, float, str]

_CENT = Decimal("0.01")


class PaymentStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    full = "full"


def to_money(value: Amount) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def derive_payment_status(paid_amount: Amount, total_amount: Amount) -> PaymentStatus:
    paid = to_money(paid_amount)
    if paid <= 0:
        return PaymentStatus.pending
    if paid >= to_money(total_amount):
        return PaymentStatus.full
    return PaymentStatus.partial


# ── Fee quoting ───────────────────────────────────────────────────────────────

def fee_percent_for(mode: str, fees: Optional[Mapping[str, float]] = None) -> Decimal:
    """
    Processing fee percent for a payment mode (case-insensitive).

    Raises:
        InvalidRequest: the mode is not configured.
    """
    table = settings.PAYMENT_MODE_FEES if fees is None else fees
    for name, percent in table.items():
        if name.lower() == (mode or "").strip().lower():
            return Decimal(str(percent))
    raise InvalidRequest(f"Unknown payment mode '{mode}'")


def canonical_mode(mode: str, fees: Optional[Mapping[str, float]] = None) -> str:
    table = settings.PAYMENT_MODE_FEES if fees is None else fees
    for name in table:
        if name.lower() == (mode or "").strip().lower():
            return name
    raise InvalidRequest(f"Unknown payment mode '{mode}'")


@dataclass(frozen=True)
class Quote:
    payment_mode: str
    base_amount: Decimal
    processing_fee: Decimal
    total_amount: Decimal


def quote_total(
    base_amount: Amount,
    payment_mode: str,
    fees: Optional[Mapping[str, float]] = None,
) -> Quote:
    base = to_money(base_amount)
    if base < 0:
        raise InvalidRequest("Amount cannot be negative")
    fee = to_money(base * fee_percent_for(payment_mode, fees) / Decimal(100))
    return Quote(
        payment_mode=canonical_mode(payment_mode, fees),
        base_amount=base,
        processing_fee=fee,
        total_amount=base + fee,
    )


def reprice(
    payment: Payment,
    *,
    payment_mode: Optional[str] = None,
    base_amount: Optional[Amount] = None,
    fees: Optional[Mapping[str, float]] = None,
) -> Payment:
    """Re-quote a payment from its base amount and refresh its status."""
    quote = quote_total(
        payment.base_amount if base_amount is None else base_amount,
        payment_mode or payment.payment_mode,
        fees,
    )
    payment.payment_mode = quote.payment_mode
    payment.base_amount = quote.base_amount
    payment.processing_fee = quote.processing_fee
    payment.total_amount = quote.total_amount
    payment.payment_status = derive_payment_status(payment.paid_amount, quote.total_amount).value
    return payment


def payment_modes(fees: Optional[Mapping[str, float]] = None) -> list[dict]:
    table = settings.PAYMENT_MODE_FEES if fees is None else fees
    return [{"name": name, "processing_fee": percent} for name, percent in table.items()]


# ── Persistence ───────────────────────────────────────────────────────────────

class PaymentService:

    @staticmethod
    async def _payment_for(
        db: AsyncSession, guard: TenantGuard, membership_id: str, for_update: bool = True
    ) -> Payment:
        stmt = guard.scope(select(Payment).where(Payment.membership_id == membership_id), Payment)
        if for_update:
            stmt = stmt.with_for_update()
        payment = (await db.execute(stmt)).scalar_one_or_none()
        if payment is None:
            raise NotFound("Payment record not found")
        return payment

    @staticmethod
    async def get_timeline(
        db: AsyncSession, identity: Identity, membership_id: str
    ) -> tuple[Payment, list[PaymentTransaction]]:
        """The membership's payment and its transactions, oldest first."""
        guard = TenantGuard.for_identity(identity)
        await guard.get(db, Membership, membership_id, label="Membership")
        payment = await PaymentService._payment_for(db, guard, membership_id, for_update=False)
        result = await db.execute(
            guard.scope(
                select(PaymentTransaction).where(
                    PaymentTransaction.membership_id == membership_id
                ),
                PaymentTransaction,
            ).order_by(PaymentTransaction.transaction_date, PaymentTransaction.id)
        )
        return payment, list(result.scalars().all())

    @staticmethod
    async def add_payment(
        db: AsyncSession,
        identity: Identity,
        membership_id: str,
        amount: Amount,
        payment_mode: str,
        reference_number: Optional[str] = None,
    ) -> Payment:
        guard = TenantGuard.for_identity(identity)
        value = to_money(amount)
        if value <= 0:
            raise InvalidRequest("Payment amount must be greater than zero")
        mode = canonical_mode(payment_mode)

        membership = await guard.get(db, Membership, membership_id, label="Membership")
        payment = await PaymentService._payment_for(db, guard, membership_id)

        payment.paid_amount = to_money(payment.paid_amount) + value
        payment.payment_status = derive_payment_status(
            payment.paid_amount, payment.total_amount
        ).value

        db.add(
            guard.stamp(
                PaymentTransaction(
                    member_id=membership.member_id,
                    membership_id=membership_id,
                    transaction_type="additional_payment",
                    amount=value,
                    payment_mode=mode,
                    receipt_number=reference_number,
                    created_by=identity.display_name,
                )
            )
        )
        await AuditService.record_for(
            db,
            identity,
            AuditAction.CREATE,
            "payment",
            membership_id,
            f"Payment of {value} via {mode} recorded by {identity.display_name}",
        )
        await db.flush()
        logger.info(
            "Payment recorded",
            tenant_id=guard.tenant_id,
            membership_id=membership_id,
            status=payment.payment_status,
        )
        return payment

    @staticmethod
    async def change_payment_mode(
        db: AsyncSession,
        identity: Identity,
        membership_id: str,
        payment_mode: str,
        base_amount: Optional[Amount] = None,
    ) -> Payment:
        guard = TenantGuard.for_identity(identity)
        payment = await PaymentService._payment_for(db, guard, membership_id)
        reprice(payment, payment_mode=payment_mode, base_amount=base_amount)
        await AuditService.record_for(
            db,
            identity,
            AuditAction.UPDATE,
            "payment",
            membership_id,
            f"Payment re-quoted as {payment.payment_mode}: total {payment.total_amount}",
        )
        await db.flush()
        return payment
