"""
models/member.py
----------------
Gym member and membership plan ORM models.

Email and phone are unique per company, not globally: the same person may
train at two unrelated gyms.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gymdesk.db.base import Base, TenantScopedMixin, TimestampMixin


class Member(Base, TenantScopedMixin, TimestampMixin):
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_member_company_email"),
        UniqueConstraint("company_id", "phone_number", name="uq_member_company_phone"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    member_number: Mapped[int] = mapped_column(Integer, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    emergency_contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    emergency_contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<Member id={self.id} number={self.member_number}>"


class MembershipPlan(Base, TenantScopedMixin, TimestampMixin):
    __tablename__ = "membership_plans"
    __table_args__ = (
        UniqueConstraint("company_id", "plan_name", name="uq_plan_company_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    def __repr__(self) -> str:
        return f"<MembershipPlan id={self.id} name={self.plan_name}>"
