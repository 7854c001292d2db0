# backend/spabook/services/payment_gate.py
"""
Payment Validation Gate.

Pure predicates over booking/payment snapshots. Callers must pass payment
snapshots read inside the same transaction as the transition they guard;
nothing here caches or touches the database.
"""

from typing import Iterable

from ..core.enums import PaymentStatus
from ..schemas.booking import BookingSnapshot, PaymentSnapshot

PAYMENT_COMPLETED_MESSAGE = "Payment completed"
PAYMENT_PENDING_MESSAGE = "Payment pending verification"
PAYMENT_FAILED_MESSAGE = "Payment failed - requires retry"
PAYMENT_REFUNDED_MESSAGE = "Payment refunded"
PAYMENT_REQUIRED_MESSAGE = "Payment required to proceed"


def has_valid_payment(booking: BookingSnapshot, payments: Iterable[PaymentSnapshot]) -> bool:
    """
    True iff some payment is completed and covers the booking total.

    Partial payments never validate, even when several of them add up.
    """
    return any(
        payment.status == PaymentStatus.COMPLETED and payment.amount >= booking.total_amount
        for payment in payments
    )


def requires_payment(booking: BookingSnapshot, payments: Iterable[PaymentSnapshot]) -> bool:
    return not has_valid_payment(booking, payments)


def payment_status_message(booking: BookingSnapshot, payments: Iterable[PaymentSnapshot]) -> str:
    """Describe the payment state for admin screens. Carries no state of its own."""
    payments = list(payments)
    if has_valid_payment(booking, payments):
        return PAYMENT_COMPLETED_MESSAGE

    statuses = {payment.status for payment in payments}
    if PaymentStatus.PENDING in statuses:
        return PAYMENT_PENDING_MESSAGE
    if PaymentStatus.FAILED in statuses:
        return PAYMENT_FAILED_MESSAGE
    if PaymentStatus.REFUNDED in statuses:
        return PAYMENT_REFUNDED_MESSAGE
    return PAYMENT_REQUIRED_MESSAGE
