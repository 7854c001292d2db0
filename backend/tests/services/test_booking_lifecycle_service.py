# backend/tests/services/test_booking_lifecycle_service.py
"""
Tests for BookingLifecycleService against a real (SQLite) session.

Covers every transition, the payment gate, the audit trail and branch
scoping. Capacity and double-booking admission lives in
test_booking_admission.py.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from spabook.core.enums import BookingStatus, LifecycleAction, PaymentMethod, PaymentStatus
from spabook.core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    PaymentRequiredException,
    ValidationException,
)
from spabook.models.audit_log import BookingAuditLog
from spabook.models.booking import Booking
from spabook.models.payment import Payment
from spabook.monitoring.prometheus_metrics import prometheus_metrics
from spabook.services.booking_lifecycle_service import BookingLifecycleService


def _audit_actions(db: Session, booking_id: str) -> list[str]:
    rows = (
        db.query(BookingAuditLog)
        .filter(BookingAuditLog.booking_id == booking_id)
        .order_by(BookingAuditLog.occurred_at, BookingAuditLog.id)
        .all()
    )
    return [row.action for row in rows]


class TestConfirm:
    def test_confirm_without_payment_is_rejected(self, db, lifecycle_service, booking_factory):
        booking = booking_factory()

        with pytest.raises(PaymentRequiredException) as exc_info:
            lifecycle_service.confirm(booking.id)

        assert exc_info.value.status_code == 402
        assert exc_info.value.details["payment_status_message"] == "Payment required to proceed"
        db.expire_all()
        reloaded = db.get(Booking, booking.id)
        assert reloaded.status == BookingStatus.PENDING.value
        assert reloaded.confirmed_at is None
        assert _audit_actions(db, booking.id) == []

    def test_confirm_with_partial_payment_is_rejected(
        self, lifecycle_service, booking_factory, payment_factory
    ):
        booking = booking_factory()
        payment_factory(booking, amount="20.00")

        with pytest.raises(PaymentRequiredException):
            lifecycle_service.confirm(booking.id)

    def test_confirm_with_pending_payment_reports_pending(
        self, lifecycle_service, booking_factory, payment_factory
    ):
        booking = booking_factory()
        payment_factory(booking, status=PaymentStatus.PENDING)

        with pytest.raises(PaymentRequiredException) as exc_info:
            lifecycle_service.confirm(booking.id)

        assert exc_info.value.details["payment_status_message"] == "Payment pending verification"

    def test_confirm_with_valid_payment(
        self, db, lifecycle_service, booking_factory, payment_factory, fixed_now
    ):
        booking = booking_factory()
        payment_factory(booking)

        confirmed = lifecycle_service.confirm(booking.id)

        assert confirmed.status == BookingStatus.CONFIRMED.value
        assert confirmed.confirmed_at == fixed_now
        assert _audit_actions(db, booking.id) == [LifecycleAction.CONFIRM.value]

    def test_payment_written_after_booking_was_loaded_is_seen(
        self, db, lifecycle_service, booking_factory
    ):
        booking = booking_factory()
        # Warm the identity map before the payment subsystem writes
        lifecycle_service.get_booking(booking.id)
        db.add(
            Payment(
                booking_id=booking.id,
                amount=Decimal("50.00"),
                payment_method=PaymentMethod.MPESA.value,
                status=PaymentStatus.COMPLETED.value,
            )
        )
        db.commit()

        assert lifecycle_service.confirm(booking.id).status == BookingStatus.CONFIRMED.value

    def test_double_confirm_is_invalid_transition(
        self, db, lifecycle_service, booking_factory, payment_factory
    ):
        booking = booking_factory()
        payment_factory(booking)
        lifecycle_service.confirm(booking.id)

        with pytest.raises(InvalidTransitionException) as exc_info:
            lifecycle_service.confirm(booking.id)

        assert exc_info.value.details["current_status"] == BookingStatus.CONFIRMED.value
        assert _audit_actions(db, booking.id) == [LifecycleAction.CONFIRM.value]

    def test_unknown_booking(self, lifecycle_service):
        with pytest.raises(NotFoundException):
            lifecycle_service.confirm("01HF4G12ABCDEF3456789XYZAB")


class TestStartAndComplete:
    def test_start_needs_no_payment(self, db, lifecycle_service, booking_factory, fixed_now):
        booking = booking_factory()

        started = lifecycle_service.start_service(booking.id)

        assert started.status == BookingStatus.IN_PROGRESS.value
        assert started.service_started_at == fixed_now

    def test_start_twice_is_rejected(self, lifecycle_service, booking_factory):
        booking = booking_factory()
        lifecycle_service.start_service(booking.id)

        with pytest.raises(InvalidTransitionException):
            lifecycle_service.start_service(booking.id)

    def test_complete_after_start_keeps_real_start(
        self, db, booking_factory, payment_factory, fixed_now
    ):
        booking = booking_factory(
            status=BookingStatus.IN_PROGRESS.value,
            service_started_at=fixed_now - timedelta(minutes=45),
        )
        payment_factory(booking)
        service = BookingLifecycleService(db, clock=lambda: fixed_now)

        completed = service.complete_service(booking.id)

        assert completed.status == BookingStatus.COMPLETED.value
        assert completed.service_started_at == fixed_now - timedelta(minutes=45)
        assert completed.service_completed_at == fixed_now
        assert service.to_response(completed).service_duration_minutes == 45

    def test_direct_completion_backfills_start(
        self, db, lifecycle_service, booking_factory, payment_factory, service, fixed_now
    ):
        booking = booking_factory(status=BookingStatus.CONFIRMED.value, confirmed_at=fixed_now)
        payment_factory(booking)

        completed = lifecycle_service.complete_service(booking.id)

        assert completed.status == BookingStatus.COMPLETED.value
        assert completed.service_completed_at == fixed_now
        assert completed.service_started_at == fixed_now - timedelta(minutes=service.duration_minutes)
        assert lifecycle_service.to_response(completed).service_duration_minutes == 60

        entry = db.query(BookingAuditLog).filter_by(booking_id=booking.id).one()
        assert entry.action == LifecycleAction.COMPLETE_DIRECT.value
        assert entry.from_status == BookingStatus.CONFIRMED.value
        assert entry.details["assumed_duration_minutes"] == 60
        assert entry.details["service_duration_minutes"] == 60

    def test_complete_without_payment(self, db, lifecycle_service, booking_factory, fixed_now):
        booking = booking_factory(status=BookingStatus.IN_PROGRESS.value, service_started_at=fixed_now)

        with pytest.raises(PaymentRequiredException):
            lifecycle_service.complete_service(booking.id)

        db.expire_all()
        assert db.get(Booking, booking.id).status == BookingStatus.IN_PROGRESS.value

    def test_pending_cannot_complete(self, lifecycle_service, booking_factory, payment_factory):
        booking = booking_factory()
        payment_factory(booking)

        with pytest.raises(InvalidTransitionException):
            lifecycle_service.complete_service(booking.id)


class TestCancelAndNoShow:
    def test_cancel_requires_reason(self, db, lifecycle_service, booking_factory):
        booking = booking_factory()

        with pytest.raises(ValidationException):
            lifecycle_service.cancel(booking.id, "   ")

        db.expire_all()
        assert db.get(Booking, booking.id).status == BookingStatus.PENDING.value

    def test_cancel_completed_booking(self, lifecycle_service, booking_factory):
        booking = booking_factory(status=BookingStatus.COMPLETED.value)

        with pytest.raises(InvalidTransitionException) as exc_info:
            lifecycle_service.cancel(booking.id, "changed plans")

        assert exc_info.value.message == "Cannot cancel a booking that is completed"

    def test_cancel_records_reason_and_time(
        self, db, lifecycle_service, booking_factory, fixed_now
    ):
        booking = booking_factory(status=BookingStatus.CONFIRMED.value)

        cancelled = lifecycle_service.cancel(booking.id, "  client travelling  ")

        assert cancelled.status == BookingStatus.CANCELLED.value
        assert cancelled.cancelled_at == fixed_now
        assert cancelled.cancellation_reason == "client travelling"
        entry = db.query(BookingAuditLog).filter_by(booking_id=booking.id).one()
        assert entry.details == {"reason": "client travelling"}

    def test_cancel_twice(self, lifecycle_service, booking_factory):
        booking = booking_factory()
        lifecycle_service.cancel(booking.id, "duplicate")

        with pytest.raises(InvalidTransitionException):
            lifecycle_service.cancel(booking.id, "duplicate")

    def test_no_show(self, db, lifecycle_service, booking_factory):
        booking = booking_factory(status=BookingStatus.CONFIRMED.value)

        marked = lifecycle_service.mark_no_show(booking.id)

        assert marked.status == BookingStatus.NO_SHOW.value
        assert _audit_actions(db, booking.id) == [LifecycleAction.NO_SHOW.value]

    def test_no_show_is_terminal(self, lifecycle_service, booking_factory):
        booking = booking_factory(status=BookingStatus.NO_SHOW.value)

        with pytest.raises(InvalidTransitionException):
            lifecycle_service.cancel(booking.id, "too late")
        with pytest.raises(InvalidTransitionException):
            lifecycle_service.start_service(booking.id)


class TestRecordPayment:
    def test_record_payment_leaves_status_unchanged(
        self, db, lifecycle_service, booking_factory, fixed_now
    ):
        booking = booking_factory()

        updated = lifecycle_service.record_payment(booking.id, "50.00", "mpesa", reference="QK12ABC")

        assert updated.status == BookingStatus.PENDING.value
        assert updated.payment_status == PaymentStatus.COMPLETED.value
        assert updated.payment_method == PaymentMethod.MPESA.value
        assert updated.total_amount == Decimal("50.00")

        payment = db.query(Payment).filter_by(booking_id=booking.id).one()
        assert payment.transaction_reference == "QK12ABC"
        assert payment.processed_at == fixed_now

        entry = db.query(BookingAuditLog).filter_by(booking_id=booking.id).one()
        assert entry.action == LifecycleAction.RECORD_PAYMENT.value
        assert entry.from_status == entry.to_status == BookingStatus.PENDING.value

    def test_record_payment_updates_primary_payment(
        self, db, lifecycle_service, booking_factory, payment_factory
    ):
        booking = booking_factory()
        payment_factory(booking, status=PaymentStatus.PENDING)

        lifecycle_service.record_payment(booking.id, Decimal("50"), PaymentMethod.CARD)

        payments = db.query(Payment).filter_by(booking_id=booking.id).all()
        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.COMPLETED.value
        assert payments[0].payment_method == PaymentMethod.CARD.value

    def test_pending_payment_is_not_processed(self, db, lifecycle_service, booking_factory):
        booking = booking_factory()

        lifecycle_service.record_payment(booking.id, 50, "cash", status="pending")

        payment = db.query(Payment).filter_by(booking_id=booking.id).one()
        assert payment.processed_at is None

    def test_recorded_payment_unlocks_confirm(self, lifecycle_service, booking_factory):
        booking = booking_factory()
        lifecycle_service.record_payment(booking.id, "50.00", "cash")

        assert lifecycle_service.confirm(booking.id).status == BookingStatus.CONFIRMED.value

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amount(self, lifecycle_service, booking_factory, amount):
        booking = booking_factory()

        with pytest.raises(ValidationException):
            lifecycle_service.record_payment(booking.id, amount, "cash")

    def test_invalid_method(self, lifecycle_service, booking_factory):
        booking = booking_factory()

        with pytest.raises(ValidationException) as exc_info:
            lifecycle_service.record_payment(booking.id, "50", "bitcoin")

        assert exc_info.value.details["field"] == "payment_method"


class TestBulkOperations:
    def test_bulk_confirm_is_best_effort(
        self, db, lifecycle_service, booking_factory, payment_factory
    ):
        paid = booking_factory()
        payment_factory(paid)
        unpaid = booking_factory()

        result = lifecycle_service.bulk_confirm([paid.id, unpaid.id, paid.id])

        assert result.successful == 1
        assert result.failed == 1
        by_id = {item.booking_id: item for item in result.results}
        assert by_id[paid.id].status == "success"
        assert by_id[unpaid.id].error_code == "PAYMENT_REQUIRED"

        db.expire_all()
        assert db.get(Booking, paid.id).status == BookingStatus.CONFIRMED.value
        assert db.get(Booking, unpaid.id).status == BookingStatus.PENDING.value

    def test_bulk_cancel_reports_missing_bookings(self, lifecycle_service, booking_factory):
        booking = booking_factory()

        result = lifecycle_service.bulk_cancel([booking.id, "01HF4G12ABCDEF3456789XYZAB"], "closure")

        assert result.successful == 1
        assert result.failed == 1
        assert result.results[1].error_code == "NOT_FOUND"


class TestBranchScoping:
    def test_other_branch_reads_as_not_found(
        self, lifecycle_service, booking_factory, payment_factory, other_branch
    ):
        booking = booking_factory()
        payment_factory(booking)

        with pytest.raises(NotFoundException):
            lifecycle_service.confirm(booking.id, branch_id=other_branch.id)
        with pytest.raises(NotFoundException):
            lifecycle_service.get_booking(booking.id, branch_id=other_branch.id)

    def test_matching_branch(self, lifecycle_service, booking_factory, payment_factory, branch):
        booking = booking_factory()
        payment_factory(booking)

        assert lifecycle_service.confirm(booking.id, branch_id=branch.id).status == "confirmed"


class TestReadsAndAudit:
    def test_payment_overview(self, lifecycle_service, booking_factory, payment_factory):
        booking = booking_factory()
        payment_factory(booking, status=PaymentStatus.FAILED)

        overview = lifecycle_service.get_payment_overview(booking.id)

        assert overview.has_valid_payment is False
        assert overview.message == "Payment failed - requires retry"

    def test_audit_trail_follows_lifecycle(self, db, booking_factory, fixed_now):
        ticks = iter(fixed_now + timedelta(minutes=minute) for minute in range(10))
        lifecycle_service = BookingLifecycleService(db, clock=lambda: next(ticks))
        booking = booking_factory()
        lifecycle_service.record_payment(booking.id, "50.00", "cash")
        lifecycle_service.confirm(booking.id)
        lifecycle_service.start_service(booking.id)
        lifecycle_service.complete_service(booking.id)

        trail = lifecycle_service.get_audit_trail(booking.id)

        assert [entry["action"] for entry in trail] == [
            LifecycleAction.RECORD_PAYMENT.value,
            LifecycleAction.CONFIRM.value,
            LifecycleAction.START.value,
            LifecycleAction.COMPLETE.value,
        ]
        assert [entry["to_status"] for entry in trail] == [
            "pending",
            "confirmed",
            "in_progress",
            "completed",
        ]

    def test_transition_outcomes_are_counted(self, lifecycle_service, booking_factory):
        booking = booking_factory()

        with patch.object(prometheus_metrics, "record_transition") as mock_record:
            with pytest.raises(PaymentRequiredException):
                lifecycle_service.confirm(booking.id)

        mock_record.assert_called_once_with("confirm", "PAYMENT_REQUIRED")
