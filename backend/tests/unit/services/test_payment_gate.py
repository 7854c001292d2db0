from __future__ import annotations

from decimal import Decimal

from spabook.core.enums import BookingStatus, PaymentStatus
from spabook.schemas.booking import BookingSnapshot, PaymentSnapshot
from spabook.services.payment_gate import (
    PAYMENT_COMPLETED_MESSAGE,
    PAYMENT_FAILED_MESSAGE,
    PAYMENT_PENDING_MESSAGE,
    PAYMENT_REFUNDED_MESSAGE,
    PAYMENT_REQUIRED_MESSAGE,
    has_valid_payment,
    payment_status_message,
    requires_payment,
)


def _booking(total: str = "50.00") -> BookingSnapshot:
    return BookingSnapshot(id="b1", status=BookingStatus.PENDING, total_amount=Decimal(total))


def _payment(amount: str, status: PaymentStatus) -> PaymentSnapshot:
    return PaymentSnapshot(amount=Decimal(amount), status=status)


class TestHasValidPayment:
    def test_no_payments_is_invalid(self) -> None:
        assert has_valid_payment(_booking(), []) is False
        assert requires_payment(_booking(), []) is True

    def test_completed_payment_covering_total(self) -> None:
        assert has_valid_payment(_booking(), [_payment("50.00", PaymentStatus.COMPLETED)]) is True

    def test_overpayment_is_valid(self) -> None:
        assert has_valid_payment(_booking(), [_payment("60.00", PaymentStatus.COMPLETED)]) is True

    def test_completed_but_short_is_invalid(self) -> None:
        assert has_valid_payment(_booking(), [_payment("49.99", PaymentStatus.COMPLETED)]) is False

    def test_partial_payments_do_not_add_up(self) -> None:
        payments = [
            _payment("25.00", PaymentStatus.COMPLETED),
            _payment("25.00", PaymentStatus.COMPLETED),
        ]
        assert has_valid_payment(_booking(), payments) is False

    def test_pending_payment_for_full_amount_is_invalid(self) -> None:
        assert has_valid_payment(_booking(), [_payment("50.00", PaymentStatus.PENDING)]) is False

    def test_one_valid_payment_among_failures(self) -> None:
        payments = [
            _payment("50.00", PaymentStatus.FAILED),
            _payment("50.00", PaymentStatus.COMPLETED),
        ]
        assert has_valid_payment(_booking(), payments) is True

    def test_zero_total_still_needs_a_completed_payment(self) -> None:
        assert has_valid_payment(_booking("0.00"), []) is False
        assert has_valid_payment(_booking("0.00"), [_payment("0.00", PaymentStatus.COMPLETED)]) is True


class TestPaymentStatusMessage:
    def test_valid_payment_message(self) -> None:
        message = payment_status_message(_booking(), [_payment("50.00", PaymentStatus.COMPLETED)])
        assert message == PAYMENT_COMPLETED_MESSAGE

    def test_pending_wins_over_failed(self) -> None:
        payments = [
            _payment("50.00", PaymentStatus.FAILED),
            _payment("50.00", PaymentStatus.PENDING),
        ]
        assert payment_status_message(_booking(), payments) == PAYMENT_PENDING_MESSAGE

    def test_failed_message(self) -> None:
        message = payment_status_message(_booking(), [_payment("50.00", PaymentStatus.FAILED)])
        assert message == PAYMENT_FAILED_MESSAGE

    def test_refunded_message(self) -> None:
        message = payment_status_message(_booking(), [_payment("50.00", PaymentStatus.REFUNDED)])
        assert message == PAYMENT_REFUNDED_MESSAGE

    def test_short_completed_payment_reports_required(self) -> None:
        message = payment_status_message(_booking(), [_payment("10.00", PaymentStatus.COMPLETED)])
        assert message == PAYMENT_REQUIRED_MESSAGE

    def test_no_payments_reports_required(self) -> None:
        assert payment_status_message(_booking(), []) == PAYMENT_REQUIRED_MESSAGE
