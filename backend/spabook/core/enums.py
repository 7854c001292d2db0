# backend/spabook/core/enums.py
"""
Core enums for the booking platform.

The string values are a fixed vocabulary shared with reporting and
notification consumers, so they must never change.
"""

from datetime import date
from enum import Enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Created by intake, awaiting payment/confirmation
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"  # Service has started
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"  # Client didn't attend


class PaymentStatus(str, Enum):
    """Payment state, tracked independently of the booking status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment methods accepted at the front desk."""

    CASH = "cash"
    MPESA = "mpesa"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"


class DayOfWeek(str, Enum):
    """Day names used by time-slot capacity rules."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        """Return the rule day for a calendar date (Monday is weekday 0)."""
        return list(cls)[value.weekday()]


class LifecycleAction(str, Enum):
    """Actions recorded in the booking audit log."""

    ADMIT = "admit"
    CONFIRM = "confirm"
    RECORD_PAYMENT = "record_payment"
    START = "start"
    COMPLETE = "complete"
    COMPLETE_DIRECT = "complete_direct"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
