"""
models/membership.py
--------------------
Membership and hold-history ORM models.

Invariants maintained by services/membership_service.py:
  - status == "on_hold"  ⇔  exactly one HoldHistory row with resumed_at NULL
  - a HoldHistory row is never edited again once resumed_at is set
  - "expired" is never written; it is derived at read time from end_date
"""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from gymdesk.db.base import Base, TenantScopedMixin
from gymdesk.services.lifecycle import MembershipStatus


class Membership(Base, TenantScopedMixin):
    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    member_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("membership_plans.id", ondelete="RESTRICT"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MembershipStatus.active.value
    )
    is_on_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hold_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    hold_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Membership id={self.id} status={self.status}>"


class HoldHistory(Base, TenantScopedMixin):
    __tablename__ = "membership_holds"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    membership_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True
    )
    hold_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    hold_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    hold_reason: Mapped[str] = mapped_column(Text, nullable=False)
    days_on_hold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    @property
    def is_open(self) -> bool:
        return self.resumed_at is None

    def __repr__(self) -> str:
        return f"<HoldHistory id={self.id} membership_id={self.membership_id}>"
