"""
schemas/membership.py
---------------------
Pydantic models for plans, memberships, lifecycle actions and payments.

MembershipRead.status is the effective status (expiry applied at read
time), not necessarily the stored column.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

# Upper bound for hold_duration in either unit.
MAX_HOLD_DURATION = 3650


# ── Plans ─────────────────────────────────────────────────────────────────────

class PlanCreate(BaseModel):
    plan_name: str = Field(..., min_length=1, max_length=255)
    duration_months: int = Field(..., ge=1, le=120)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)


class PlanRead(BaseModel):
    id: str
    plan_name: str
    duration_months: int
    price: Decimal

    model_config = {"from_attributes": True}


# ── Memberships ───────────────────────────────────────────────────────────────

class MembershipCreate(BaseModel):
    plan_id: str
    start_date: date
    end_date: Optional[date] = Field(
        default=None, description="Overrides start + plan duration; must be after start"
    )
    payment_mode: str = "Cash"
    base_amount: Optional[Decimal] = Field(
        default=None, ge=0, description="Defaults to the plan price"
    )
    amount_paid_now: Decimal = Field(default=Decimal("0"), ge=0)
    reference_number: Optional[str] = Field(default=None, max_length=100)
    next_due_date: Optional[date] = None


class MembershipRead(BaseModel):
    id: str
    member_id: str
    plan_id: str
    start_date: date
    end_date: date
    status: str
    is_on_hold: bool
    hold_start_date: Optional[date]
    hold_end_date: Optional[date]
    hold_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class LifecycleRequest(BaseModel):
    action: Literal["hold", "resume", "cancel"]
    hold_reason: Optional[str] = None
    hold_duration: Optional[int] = Field(default=None, le=MAX_HOLD_DURATION)
    hold_unit: Optional[str] = Field(default=None, description="'days' or 'months'")


class LifecycleResponse(BaseModel):
    success: bool = True
    message: str
    days_extended: Optional[int] = None


class AutoResumeResponse(BaseModel):
    success: bool = True
    message: str
    count: int


# ── Payments ──────────────────────────────────────────────────────────────────

class PaymentAdd(BaseModel):
    membership_id: str
    amount: Decimal = Field(..., gt=0)
    payment_mode: str
    reference_number: Optional[str] = Field(default=None, max_length=100)


class PaymentModeChange(BaseModel):
    payment_mode: str
    base_amount: Optional[Decimal] = Field(default=None, ge=0)


class PaymentRead(BaseModel):
    membership_id: str
    base_amount: Decimal
    processing_fee: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    payment_mode: str
    payment_status: str

    model_config = {"from_attributes": True}


class TransactionRead(BaseModel):
    id: str
    transaction_type: str
    amount: Decimal
    payment_mode: str
    receipt_number: Optional[str]
    created_by: Optional[str]
    transaction_date: datetime

    model_config = {"from_attributes": True}


class PaymentTimeline(BaseModel):
    payment: PaymentRead
    transactions: list[TransactionRead]


class PaymentModeRead(BaseModel):
    name: str
    processing_fee: float
