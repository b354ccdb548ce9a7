"""
api/routes/payments.py
----------------------
Payments attached to memberships.

GET  /payments/modes  Payment modes and their fee percent.
GET  /payments/{membership_id}  Payment and transaction timeline of a membership.
POST /payments  Record a payment against a membership.
PUT  /payments/{membership_id}/mode  Switch payment mode; total is re-quoted.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gymdesk.db.session import get_db
from gymdesk.dependencies import require_any_permission, require_permission
from gymdesk.schemas.membership import (
    PaymentAdd,
    PaymentModeChange,
    PaymentModeRead,
    PaymentRead,
    PaymentTimeline,
    TransactionRead,
)
from gymdesk.services.payment_service import PaymentService, payment_modes
from gymdesk.services.session_service import Identity

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/modes", response_model=list[PaymentModeRead], summary="Payment modes")
async def list_payment_modes(
    _: Annotated[
        Identity, Depends(require_any_permission("view_payments", "manage_payments"))
    ],
) -> list[PaymentModeRead]:
    return [PaymentModeRead(**mode) for mode in payment_modes()]


@router.get(
    "/{membership_id}",
    response_model=PaymentTimeline,
    summary="Payment and transactions of a membership",
)
async def get_payment_timeline(
    membership_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[
        Identity, Depends(require_any_permission("view_payments", "manage_payments"))
    ],
) -> PaymentTimeline:
    payment, transactions = await PaymentService.get_timeline(db, identity, membership_id)
    return PaymentTimeline(
        payment=PaymentRead.model_validate(payment),
        transactions=[TransactionRead.model_validate(t) for t in transactions],
    )


@router.post("", response_model=PaymentRead, summary="Record a payment")
async def add_payment(
    body: PaymentAdd,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_payments"))],
) -> PaymentRead:
    payment = await PaymentService.add_payment(
        db,
        identity,
        body.membership_id,
        body.amount,
        body.payment_mode,
        body.reference_number,
    )
    return PaymentRead.model_validate(payment)


@router.put(
    "/{membership_id}/mode",
    response_model=PaymentRead,
    summary="Change the payment mode of a membership",
)
async def change_payment_mode(
    membership_id: str,
    body: PaymentModeChange,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(require_permission("manage_payments"))],
) -> PaymentRead:
    payment = await PaymentService.change_payment_mode(
        db, identity, membership_id, body.payment_mode, body.base_amount
    )
    return PaymentRead.model_validate(payment)
