"""
services/lifecycle.py
---------------------
Membership lifecycle state machine and its date arithmetic.

Pure functions only: no database, no clock. Callers pass "today" in and
receive a tagged result:

    transition(state, event) -> Accepted(new_state, ...) | Rejected(reason)

membership_service.py loads the current row (under lock), builds a
MembershipState, calls transition(), and writes the Accepted state back
together with the hold-history and audit rows.

States:
    active ──hold──▶ on_hold ──resume──▶ active
    active / on_hold ──cancel──▶ cancelled (terminal)
    active ──(end_date passed)──▶ expired   (derived, never written)

Day counts are whole calendar days between dates, so the time of day at
which a hold starts or ends never changes the extension.
"""

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union


class MembershipStatus(str, Enum):
    active = "active"
    on_hold = "on_hold"
    expired = "expired"
    cancelled = "cancelled"


class HoldUnit(str, Enum):
    days = "days"
    months = "months"


# ── Date arithmetic ───────────────────────────────────────────────────────────

def add_months(start: date, months: int) -> date:
    """
    Same day-of-month N months later, clamped to the last day of the target
    month when that day does not exist (2024-01-31 + 1 month = 2024-02-29).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_duration(start: date, amount: int, unit: HoldUnit) -> date:
    if unit is HoldUnit.months:
        return add_months(start, amount)
    return start + timedelta(days=amount)


def whole_days_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Calendar days from start to end, never negative."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    return max(0, (end - start).days)


# ── State ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MembershipState:
    status: MembershipStatus
    start_date: date
    end_date: date
    hold_start_date: Optional[date] = None
    hold_end_date: Optional[date] = None
    hold_reason: Optional[str] = None
    # Start date of the open hold-history row, if one exists.
    open_hold_start: Optional[date] = None

    @property
    def is_on_hold(self) -> bool:
        return self.status is MembershipStatus.on_hold

    @property
    def has_open_hold(self) -> bool:
        return self.open_hold_start is not None


def effective_status(state: MembershipState, today: date) -> MembershipStatus:
    """
    Stored status with expiry applied. On-hold memberships never expire
    while the hold is open: their clock is paused.
    """
    if state.status is MembershipStatus.active and state.end_date < today:
        return MembershipStatus.expired
    return state.status


# ── Events ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Hold:
    reason: str
    duration: int
    unit: Union[HoldUnit, str]
    on: date


@dataclass(frozen=True)
class Resume:
    on: date


@dataclass(frozen=True)
class Cancel:
    on: date


Event = Union[Hold, Resume, Cancel]


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Accepted:
    state: MembershipState
    action: str
    message: str
    # Days spent on the hold that this transition closed (resume / cancel).
    days_on_hold: int = 0
    # End date of the hold-history row this transition closed.
    closed_hold_on: Optional[date] = None


@dataclass(frozen=True)
class Rejected:
    reason: str


TransitionResult = Union[Accepted, Rejected]


def transition(state: MembershipState, event: Event) -> TransitionResult:
    if isinstance(event, Hold):
        return _hold(state, event)
    if isinstance(event, Resume):
        return _resume(state, event)
    if isinstance(event, Cancel):
        return _cancel(state, event)
    return Rejected(f"Unsupported event {type(event).__name__}")


def _hold(state: MembershipState, event: Hold) -> TransitionResult:
    reason = (event.reason or "").strip()
    if not reason:
        return Rejected("Hold reason is required")
    if isinstance(event.duration, bool) or not isinstance(event.duration, int) or event.duration <= 0:
        return Rejected("Hold duration must be a positive whole number")
    try:
        unit = HoldUnit(event.unit)
    except ValueError:
        return Rejected("Hold unit must be 'days' or 'months'")

    if state.has_open_hold or state.is_on_hold:
        return Rejected("Membership is already on hold")
    if effective_status(state, event.on) is not MembershipStatus.active:
        return Rejected("Only active memberships can be put on hold")

    try:
        hold_end = add_duration(event.on, event.duration, unit)
    except (OverflowError, ValueError):
        return Rejected("Hold duration is too long")

    new_state = replace(
        state,
        status=MembershipStatus.on_hold,
        hold_start_date=event.on,
        hold_end_date=hold_end,
        hold_reason=reason,
        open_hold_start=event.on,
    )
    return Accepted(
        state=new_state,
        action="HOLD",
        message="Membership put on hold successfully",
    )


def _resume(state: MembershipState, event: Resume) -> TransitionResult:
    if not state.is_on_hold or not state.has_open_hold:
        return Rejected("Only on-hold memberships can be resumed")

    days = whole_days_between(state.open_hold_start, event.on)
    new_state = replace(
        state,
        status=MembershipStatus.active,
        end_date=state.end_date + timedelta(days=days),
        hold_start_date=None,
        hold_end_date=None,
        hold_reason=None,
        open_hold_start=None,
    )
    return Accepted(
        state=new_state,
        action="RESUME",
        message=f"Membership resumed. End date extended by {days} days.",
        days_on_hold=days,
        closed_hold_on=event.on,
    )


def _cancel(state: MembershipState, event: Cancel) -> TransitionResult:
    current = effective_status(state, event.on)
    if current is MembershipStatus.cancelled:
        return Rejected("Membership is already cancelled")
    if current is MembershipStatus.expired:
        return Rejected("Expired memberships cannot be cancelled")

    days = whole_days_between(state.open_hold_start, event.on) if state.has_open_hold else 0
    new_state = replace(
        state,
        status=MembershipStatus.cancelled,
        hold_start_date=None,
        hold_end_date=None,
        hold_reason=None,
        open_hold_start=None,
    )
    return Accepted(
        state=new_state,
        action="CANCEL",
        message="Membership cancelled",
        days_on_hold=days,
        closed_hold_on=event.on if state.has_open_hold else None,
    )


def plan_end_date(
    start: date,
    duration_months: int,
    explicit_end: Optional[date] = None,
) -> date:
    """
    End date for a new membership: the explicit one if supplied (must be
    strictly after start), else start + duration_months with the
    end-of-month clamp.

    Raises:
        ValueError: explicit end not after start, or non-positive duration.
    """
    if explicit_end is not None:
        if explicit_end <= start:
            raise ValueError("End date must be after start date")
        return explicit_end
    if duration_months <= 0:
        raise ValueError("Plan duration must be at least one month")
    return add_months(start, duration_months)
