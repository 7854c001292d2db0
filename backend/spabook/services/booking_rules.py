# backend/spabook/services/booking_rules.py
"""
Booking State Machine guards.

Every guard is a pure function over a BookingSnapshot (and, where payment
matters, the payment snapshots read in the same transaction). Guards never
mutate anything; BookingLifecycleService evaluates them and only then calls
the matching effect method on the Booking model.

    pending -> confirmed -> in_progress -> completed
    pending | confirmed -> in_progress
    confirmed -> completed            (direct, start time back-filled)
    pending | confirmed | in_progress -> cancelled | no_show
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, Optional

from ..core.enums import BookingStatus, LifecycleAction
from ..schemas.booking import BookingSnapshot, PaymentSnapshot
from .payment_gate import has_valid_payment, payment_status_message

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

# Source statuses each action may leave from.
TRANSITIONS: Dict[LifecycleAction, FrozenSet[BookingStatus]] = {
    LifecycleAction.CONFIRM: frozenset({BookingStatus.PENDING}),
    LifecycleAction.START: frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED}),
    LifecycleAction.COMPLETE: frozenset({BookingStatus.IN_PROGRESS}),
    LifecycleAction.COMPLETE_DIRECT: frozenset({BookingStatus.CONFIRMED}),
    LifecycleAction.CANCEL: frozenset(
        {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
    ),
    LifecycleAction.NO_SHOW: frozenset(
        {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
    ),
}

INVALID_TRANSITION = "INVALID_TRANSITION"
PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class TransitionCheck:
    """Outcome of a guard evaluation."""

    allowed: bool
    error_code: Optional[str] = None
    reason: Optional[str] = None
    # Set by can_complete to tell the caller which effect path applies.
    action: Optional[LifecycleAction] = None

    @classmethod
    def ok(cls, action: Optional[LifecycleAction] = None) -> "TransitionCheck":
        return cls(allowed=True, action=action)

    @classmethod
    def deny(cls, error_code: str, reason: str) -> "TransitionCheck":
        return cls(allowed=False, error_code=error_code, reason=reason)


def _status_label(status: BookingStatus) -> str:
    return status.value.replace("_", " ")


def _wrong_status(booking: BookingSnapshot, verb: str) -> TransitionCheck:
    return TransitionCheck.deny(
        INVALID_TRANSITION,
        f"Cannot {verb} a booking that is {_status_label(booking.status)}",
    )


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_confirm(booking: BookingSnapshot, payments: Iterable[PaymentSnapshot]) -> TransitionCheck:
    """pending -> confirmed, gated on a valid payment."""
    if booking.status not in TRANSITIONS[LifecycleAction.CONFIRM]:
        return _wrong_status(booking, "confirm")
    payments = list(payments)
    if not has_valid_payment(booking, payments):
        return TransitionCheck.deny(PAYMENT_REQUIRED, payment_status_message(booking, payments))
    return TransitionCheck.ok(LifecycleAction.CONFIRM)


def can_start(booking: BookingSnapshot) -> TransitionCheck:
    """pending | confirmed -> in_progress. No payment gate."""
    if booking.status not in TRANSITIONS[LifecycleAction.START]:
        return _wrong_status(booking, "start")
    if booking.service_started_at is not None:
        return TransitionCheck.deny(INVALID_TRANSITION, "Service has already been started")
    return TransitionCheck.ok(LifecycleAction.START)


def can_complete(
    booking: BookingSnapshot, payments: Iterable[PaymentSnapshot]
) -> TransitionCheck:
    """
    confirmed | in_progress -> completed, gated on a valid payment.

    The returned ``action`` is COMPLETE for the in_progress path and
    COMPLETE_DIRECT for the confirmed path.
    """
    if booking.status in TRANSITIONS[LifecycleAction.COMPLETE]:
        action = LifecycleAction.COMPLETE
    elif booking.status in TRANSITIONS[LifecycleAction.COMPLETE_DIRECT]:
        action = LifecycleAction.COMPLETE_DIRECT
    else:
        return _wrong_status(booking, "complete")

    payments = list(payments)
    if not has_valid_payment(booking, payments):
        return TransitionCheck.deny(PAYMENT_REQUIRED, payment_status_message(booking, payments))
    return TransitionCheck.ok(action)


def can_cancel(booking: BookingSnapshot, reason: Optional[str]) -> TransitionCheck:
    """Non-terminal -> cancelled. A non-blank reason is required."""
    if not reason or not reason.strip():
        return TransitionCheck.deny(VALIDATION_ERROR, "Cancellation reason is required")
    if booking.status not in TRANSITIONS[LifecycleAction.CANCEL]:
        return _wrong_status(booking, "cancel")
    return TransitionCheck.ok(LifecycleAction.CANCEL)


def can_mark_no_show(booking: BookingSnapshot) -> TransitionCheck:
    if booking.status not in TRANSITIONS[LifecycleAction.NO_SHOW]:
        return _wrong_status(booking, "mark as no-show")
    return TransitionCheck.ok(LifecycleAction.NO_SHOW)


def service_duration_minutes(
    started_at: Optional[datetime], completed_at: Optional[datetime]
) -> Optional[int]:
    """
    Whole minutes between start and completion.

    None until both timestamps exist. A service that ran for some time but
    finished inside its first minute reports 1; identical timestamps report 0.
    """
    if started_at is None or completed_at is None:
        return None
    elapsed = (completed_at - started_at).total_seconds()
    if 0 < elapsed < 60:
        return 1
    return int(elapsed // 60)


def backfilled_start(now: datetime, duration_minutes: int) -> datetime:
    """Synthesized start time for a confirmed booking completed without being started."""
    return now - timedelta(minutes=duration_minutes)
