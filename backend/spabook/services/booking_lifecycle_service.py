# backend/spabook/services/booking_lifecycle_service.py
"""
Booking Lifecycle Service for the spa booking platform.

Orchestrates every status change a booking goes through after intake:

- Admission of new pending bookings (capacity and double-booking checks)
- Confirmation, service start, completion, cancellation and no-show
- Payment capture mirrored onto the booking
- Best-effort bulk confirm/cancel

Each operation runs in a single transaction. The booking row is re-read
under a row lock with fresh attributes, payments are re-read at guard time,
the pure guard from booking_rules decides, and only then is the effect
applied and one audit row written. A failed guard leaves nothing behind.
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import BookingStatus, LifecycleAction, PaymentMethod, PaymentStatus
from ..core.exceptions import (
    BookingConflictException,
    CapacityExceededException,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
    PaymentRequiredException,
    ValidationException,
)
from ..core.ulid_helper import generate_booking_reference
from ..models.booking import Booking
from ..models.branch import Branch, Client, Staff
from ..models.service import Service
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.audit_repository import AuditRepository
from ..repositories.booking_repository import BookingRepository
from ..repositories.payment_repository import PaymentRepository
from ..schemas.booking import (
    AvailabilityResult,
    BookingCreate,
    BookingResponse,
    BookingSnapshot,
    BulkItemResult,
    BulkOperationResult,
    PaymentOverview,
    PaymentSnapshot,
)
from . import booking_rules
from .base import BaseService, Clock
from .payment_gate import has_valid_payment, payment_status_message
from .slot_availability_service import SlotAvailabilityService

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 10

# Payments in these states have been settled one way or the other.
PROCESSED_PAYMENT_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})


class BookingLifecycleService(BaseService):
    """
    State machine orchestrator for bookings.

    Every public mutator accepts an explicit ``branch_id``; when given, a
    booking from another branch is reported as not found.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        booking_repository: Optional[BookingRepository] = None,
        payment_repository: Optional[PaymentRepository] = None,
        audit_repository: Optional[AuditRepository] = None,
        availability_service: Optional[SlotAvailabilityService] = None,
        config: Optional[Settings] = None,
    ):
        """
        Initialize booking lifecycle service.

        Args:
            db: Database session
            clock: Source of "now" for every timestamp the service writes
            booking_repository: Optional BookingRepository instance
            payment_repository: Optional PaymentRepository instance
            audit_repository: Optional AuditRepository instance
            availability_service: Optional SlotAvailabilityService instance
            config: Settings override (defaults to the application settings)
        """
        super().__init__(db, clock=clock)
        self.settings = config or default_settings
        self.repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.payment_repository = (
            payment_repository or RepositoryFactory.create_payment_repository(db)
        )
        self.audit_repository = audit_repository or RepositoryFactory.create_audit_repository(db)
        self.availability_service = availability_service or SlotAvailabilityService(
            db,
            booking_repository=self.repository,
            uncovered_window_policy=self.settings.uncovered_window_policy,
        )
        self.branch_repository = RepositoryFactory.create_base_repository(db, Branch)
        self.client_repository = RepositoryFactory.create_base_repository(db, Client)
        self.staff_repository = RepositoryFactory.create_base_repository(db, Staff)
        self.service_repository = RepositoryFactory.create_base_repository(db, Service)

    # Admission

    @BaseService.measure_operation("admit_booking")
    def admit_booking(self, data: BookingCreate) -> Booking:
        """
        Create a pending booking after capacity and double-booking checks.

        Rule rows covering the window are locked before counting (on SQLite
        the whole admission runs under the database write lock), so two
        concurrent admissions for the same slot are serialized and cannot
        both squeeze into the last place.

        Args:
            data: Intake request

        Returns:
            The new booking in ``pending``

        Raises:
            NotFoundException: Branch, client, service or staff does not exist
            ValidationException: Inactive branch/service or an invalid window
            CapacityExceededException: A capacity rule is full (or the window is uncovered under "deny")
            BookingConflictException: Staff member or client already booked at that time
        """
        with self._track(LifecycleAction.ADMIT), self.transaction():
            # SQLite has no row locks; hold its write lock across check and insert
            self.repository.begin_write_transaction()
            branch = self._require(self.branch_repository.get_by_id(data.branch_id), "Branch", data.branch_id)
            if not branch.is_active:
                raise ValidationException(
                    "Branch is not accepting bookings", details={"branch_id": branch.id}
                )
            self._require(self.client_repository.get_by_id(data.client_id), "Client", data.client_id)
            service = self._require(
                self.service_repository.get_by_id(data.service_id), "Service", data.service_id
            )
            if not service.is_active:
                raise ValidationException(
                    "Service is not currently offered", details={"service_id": service.id}
                )
            if data.staff_id:
                self._require(self.staff_repository.get_by_id(data.staff_id), "Staff member", data.staff_id)

            end_time = data.end_time or self._end_from_duration(
                data.appointment_date, data.start_time, service.duration_minutes
            )
            self.availability_service.validate_time_range(data.start_time, end_time)

            availability = self.availability_service.check_capacity(
                data.branch_id,
                data.appointment_date,
                data.start_time,
                end_time,
                lock_rules=True,
            )
            if not availability.available:
                prometheus_metrics.inc_capacity_rejection("full" if availability.covered else "uncovered")
                raise CapacityExceededException(
                    [violation.model_dump(mode="json") for violation in availability.violations]
                )

            self._ensure_no_double_booking(data, end_time)

            booking = self.repository.create(
                booking_reference=self._unique_reference(),
                branch_id=data.branch_id,
                client_id=data.client_id,
                service_id=data.service_id,
                staff_id=data.staff_id,
                appointment_date=data.appointment_date,
                start_time=data.start_time,
                end_time=end_time,
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=data.payment_method.value if data.payment_method else None,
                total_amount=data.total_amount if data.total_amount is not None else service.price,
                notes=data.notes,
            )
            self._audit(booking, LifecycleAction.ADMIT, None, self.now(), details=booking.to_dict())

        self.log_operation(
            "admit_booking",
            booking_id=booking.id,
            branch_id=booking.branch_id,
            booking_reference=booking.booking_reference,
        )
        return booking

    # Transitions

    @BaseService.measure_operation("confirm_booking")
    def confirm(self, booking_id: str, branch_id: Optional[str] = None) -> Booking:
        """
        pending -> confirmed. Requires a completed payment covering the total.

        Raises:
            PaymentRequiredException: No valid payment
            InvalidTransitionException: Booking is not pending
        """
        with self._track(LifecycleAction.CONFIRM), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            check = booking_rules.can_confirm(self._snapshot(booking), self._payment_snapshots(booking))
            self._ensure_allowed(check, booking, "confirm")

            from_status = booking.status
            now = self.now()
            booking.confirm(now)
            self._audit(booking, LifecycleAction.CONFIRM, from_status, now)
        return booking

    @BaseService.measure_operation("start_service")
    def start_service(self, booking_id: str, branch_id: Optional[str] = None) -> Booking:
        """pending | confirmed -> in_progress. No payment gate."""
        with self._track(LifecycleAction.START), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            check = booking_rules.can_start(self._snapshot(booking))
            self._ensure_allowed(check, booking, "start")

            from_status = booking.status
            now = self.now()
            booking.start_service(now)
            self._audit(booking, LifecycleAction.START, from_status, now)
        return booking

    @BaseService.measure_operation("complete_service")
    def complete_service(self, booking_id: str, branch_id: Optional[str] = None) -> Booking:
        """
        confirmed | in_progress -> completed. Requires a valid payment.

        An in-progress booking keeps its real start time. A confirmed booking
        that was never started gets a start time back-dated by the service's
        standard duration, so its reported duration equals that standard.
        """
        with self._track(LifecycleAction.COMPLETE), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            check = booking_rules.can_complete(self._snapshot(booking), self._payment_snapshots(booking))
            self._ensure_allowed(check, booking, "complete")

            from_status = booking.status
            now = self.now()
            if check.action == LifecycleAction.COMPLETE_DIRECT:
                assumed_minutes = self._assumed_duration_minutes(booking)
                booking.complete_directly(now, booking_rules.backfilled_start(now, assumed_minutes))
                action = LifecycleAction.COMPLETE_DIRECT
                details: Dict[str, Any] = {"assumed_duration_minutes": assumed_minutes}
            else:
                booking.complete_service(now)
                action = LifecycleAction.COMPLETE
                details = {}
            details["service_duration_minutes"] = booking_rules.service_duration_minutes(
                booking.service_started_at, booking.service_completed_at
            )
            self._audit(booking, action, from_status, now, details=details)
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel(self, booking_id: str, reason: Optional[str], branch_id: Optional[str] = None) -> Booking:
        """
        Non-terminal -> cancelled with a mandatory reason.

        Raises:
            ValidationException: Reason missing or blank
            InvalidTransitionException: Booking already completed, cancelled or no-show
        """
        with self._track(LifecycleAction.CANCEL), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            check = booking_rules.can_cancel(self._snapshot(booking), reason)
            self._ensure_allowed(check, booking, "cancel")

            cleaned_reason = (reason or "").strip()
            from_status = booking.status
            now = self.now()
            booking.cancel(cleaned_reason, now)
            self._audit(booking, LifecycleAction.CANCEL, from_status, now, details={"reason": cleaned_reason})
        return booking

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, booking_id: str, branch_id: Optional[str] = None) -> Booking:
        """Non-terminal -> no_show. Admin-triggered, no payment gate."""
        with self._track(LifecycleAction.NO_SHOW), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            check = booking_rules.can_mark_no_show(self._snapshot(booking))
            self._ensure_allowed(check, booking, "mark as no-show")

            from_status = booking.status
            booking.mark_no_show()
            self._audit(booking, LifecycleAction.NO_SHOW, from_status, self.now())
        return booking

    # Payments

    @BaseService.measure_operation("record_payment")
    def record_payment(
        self,
        booking_id: str,
        amount: Union[Decimal, int, float, str],
        method: Union[PaymentMethod, str],
        reference: Optional[str] = None,
        status: Union[PaymentStatus, str] = PaymentStatus.COMPLETED,
        branch_id: Optional[str] = None,
    ) -> Booking:
        """
        Upsert the booking's primary payment and mirror it onto the booking.

        The first payment row (by creation order) is updated in place, or
        created when the booking has none. The booking's payment_status,
        payment_method and total_amount follow the payment; its lifecycle
        status never changes here.

        Raises:
            ValidationException: Non-positive amount, unknown method or unknown status
        """
        amount_value = self._parse_amount(amount)
        method_value = self._parse_choice(PaymentMethod, method, "payment_method")
        status_value = self._parse_choice(PaymentStatus, status, "payment_status")

        with self._track(LifecycleAction.RECORD_PAYMENT), self.transaction():
            booking = self._load_for_transition(booking_id, branch_id)
            now = self.now()
            processed_at = now if status_value in PROCESSED_PAYMENT_STATUSES else None

            payment = self.payment_repository.get_primary_for_booking(booking.id)
            if payment is None:
                payment = self.payment_repository.create(
                    booking_id=booking.id,
                    branch_id=booking.branch_id,
                    amount=amount_value,
                    payment_method=method_value.value,
                    transaction_reference=reference,
                    status=status_value.value,
                    processed_at=processed_at,
                    created_at=now,
                )
            else:
                payment.amount = amount_value
                payment.payment_method = method_value.value
                payment.transaction_reference = reference
                payment.status = status_value.value
                if processed_at is not None:
                    payment.processed_at = processed_at

            booking.payment_status = status_value.value
            booking.payment_method = method_value.value
            booking.total_amount = amount_value

            self._audit(
                booking,
                LifecycleAction.RECORD_PAYMENT,
                booking.status,
                now,
                details={
                    "payment_id": payment.id,
                    "amount": str(amount_value),
                    "payment_method": method_value.value,
                    "payment_status": status_value.value,
                    "transaction_reference": reference,
                },
            )
        return booking

    # Bulk operations

    @BaseService.measure_operation("bulk_confirm")
    def bulk_confirm(self, booking_ids: List[str], branch_id: Optional[str] = None) -> BulkOperationResult:
        """Confirm each booking in its own transaction; one failure never blocks the rest."""
        return self._run_bulk(booking_ids, lambda booking_id: self.confirm(booking_id, branch_id))

    @BaseService.measure_operation("bulk_cancel")
    def bulk_cancel(
        self, booking_ids: List[str], reason: Optional[str], branch_id: Optional[str] = None
    ) -> BulkOperationResult:
        """Cancel each booking in its own transaction with a shared reason."""
        return self._run_bulk(booking_ids, lambda booking_id: self.cancel(booking_id, reason, branch_id))

    # Reads

    def check_availability(
        self,
        branch_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """Capacity answer for a candidate window (see SlotAvailabilityService)."""
        return self.availability_service.check_capacity(
            branch_id, booking_date, start_time, end_time, exclude_booking_id
        )

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str, branch_id: Optional[str] = None) -> Booking:
        booking = self.repository.get_booking_with_details(booking_id)
        return self._check_scope(booking, booking_id, branch_id)

    def get_payment_overview(self, booking_id: str, branch_id: Optional[str] = None) -> PaymentOverview:
        """Payment validity and display message computed from fresh payment rows."""
        booking = self._check_scope(self.repository.get_by_id(booking_id, load_relationships=False), booking_id, branch_id)
        snapshot = self._snapshot(booking)
        payments = self._payment_snapshots(booking)
        return PaymentOverview(
            booking_id=booking.id,
            payment_status=booking.payment_status,
            has_valid_payment=has_valid_payment(snapshot, payments),
            message=payment_status_message(snapshot, payments),
        )

    def get_audit_trail(self, booking_id: str) -> List[Dict[str, Any]]:
        return [
            {
                "action": entry.action,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "occurred_at": entry.occurred_at,
                "details": entry.details or {},
            }
            for entry in self.audit_repository.list_for_booking(booking_id)
        ]

    @staticmethod
    def to_response(booking: Booking) -> BookingResponse:
        response = BookingResponse.model_validate(booking)
        return response.model_copy(
            update={
                "service_duration_minutes": booking_rules.service_duration_minutes(
                    booking.service_started_at, booking.service_completed_at
                )
            }
        )

    # Helpers

    @contextmanager
    def _track(self, action: LifecycleAction) -> Iterator[None]:
        """Count the transition outcome; guard failures log at WARNING."""
        try:
            yield
        except DomainException as exc:
            prometheus_metrics.record_transition(action.value, exc.code)
            self.logger.warning(
                f"{action.value} rejected: {exc.message}",
                extra={"action": action.value, "error_code": exc.code, "details": exc.details},
            )
            raise
        prometheus_metrics.record_transition(action.value, "success")

    def _load_for_transition(self, booking_id: str, branch_id: Optional[str]) -> Booking:
        return self._check_scope(self.repository.get_for_update(booking_id), booking_id, branch_id)

    @staticmethod
    def _check_scope(booking: Optional[Booking], booking_id: str, branch_id: Optional[str]) -> Booking:
        if booking is None or (branch_id is not None and booking.branch_id != branch_id):
            raise NotFoundException(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        return booking

    @staticmethod
    def _require(entity: Any, label: str, entity_id: str) -> Any:
        if entity is None:
            raise NotFoundException(f"{label} {entity_id} not found", details={"id": entity_id})
        return entity

    @staticmethod
    def _snapshot(booking: Booking) -> BookingSnapshot:
        return BookingSnapshot.model_validate(booking)

    def _payment_snapshots(self, booking: Booking) -> List[PaymentSnapshot]:
        # Straight from the table: the payment subsystem may have written since the booking was loaded.
        return [
            PaymentSnapshot.model_validate(payment)
            for payment in self.payment_repository.get_for_booking(booking.id)
        ]

    @staticmethod
    def _ensure_allowed(check: booking_rules.TransitionCheck, booking: Booking, verb: str) -> None:
        if check.allowed:
            return
        reason = check.reason or f"Cannot {verb} this booking"
        if check.error_code == booking_rules.PAYMENT_REQUIRED:
            raise PaymentRequiredException(booking.id, verb, reason)
        if check.error_code == booking_rules.VALIDATION_ERROR:
            raise ValidationException(reason, details={"booking_id": booking.id})
        raise InvalidTransitionException(booking.id, booking.status, verb, message=reason)

    def _audit(
        self,
        booking: Booking,
        action: LifecycleAction,
        from_status: Optional[str],
        occurred_at: datetime,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.audit_repository.record(
            booking_id=booking.id,
            action=action.value,
            from_status=from_status,
            to_status=booking.status,
            occurred_at=occurred_at,
            details=details,
        )
        self.logger.info(
            f"Booking {booking.id} {action.value}: {from_status} -> {booking.status}",
            extra={"booking_id": booking.id, "branch_id": booking.branch_id, "action": action.value},
        )

    def _assumed_duration_minutes(self, booking: Booking) -> int:
        """Service standard duration, then the booked window length, then the configured default."""
        service = booking.service
        if service is not None and service.duration_minutes and service.duration_minutes > 0:
            return int(service.duration_minutes)
        scheduled = booking.scheduled_minutes
        if scheduled and scheduled > 0:
            return scheduled
        return self.settings.assumed_service_minutes

    @staticmethod
    def _end_from_duration(booking_date: date, start_time: time, duration_minutes: int) -> time:
        start = datetime.combine(booking_date, start_time)
        end = start + timedelta(minutes=duration_minutes)
        if end.date() != booking_date:
            raise ValidationException(
                "Booking would run past midnight",
                details={"start_time": str(start_time), "duration_minutes": duration_minutes},
            )
        return end.time()

    def _ensure_no_double_booking(self, data: BookingCreate, end_time: time) -> None:
        if data.staff_id:
            staff_conflicts = self.availability_service.find_staff_conflicts(
                data.staff_id, data.appointment_date, data.start_time, end_time
            )
            if staff_conflicts:
                raise BookingConflictException(
                    "Staff member is already booked during this time",
                    details={"staff_id": data.staff_id, "conflicts": staff_conflicts},
                )

        client_conflicts = self.availability_service.find_client_conflicts(
            data.client_id, data.appointment_date, data.start_time, end_time
        )
        if client_conflicts:
            raise BookingConflictException(
                "Client already has a booking during this time",
                details={"client_id": data.client_id, "conflicts": client_conflicts},
            )

    def _unique_reference(self) -> str:
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            reference = generate_booking_reference(
                self.settings.booking_reference_prefix, self.settings.booking_reference_length
            )
            if not self.repository.reference_exists(reference):
                return reference
        raise BookingConflictException("Could not allocate a unique booking reference")

    @staticmethod
    def _parse_amount(amount: Union[Decimal, int, float, str]) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationException(
                "Payment amount must be a number", details={"amount": str(amount)}
            ) from exc
        if not value.is_finite() or value <= 0:
            raise ValidationException(
                "Payment amount must be greater than zero", details={"amount": str(amount)}
            )
        return value.quantize(Decimal("0.01"))

    @staticmethod
    def _parse_choice(enum_cls: Any, value: Any, field: str) -> Any:
        try:
            return enum_cls(value)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationException(
                f"Invalid {field.replace('_', ' ')}: {value}. Allowed: {allowed}",
                details={"field": field, "value": str(value)},
            ) from exc

    def _run_bulk(self, booking_ids: List[str], operation: Any) -> BulkOperationResult:
        result = BulkOperationResult()
        for booking_id in dict.fromkeys(booking_ids):
            try:
                operation(booking_id)
            except DomainException as exc:
                result.failed += 1
                result.results.append(
                    BulkItemResult(
                        booking_id=booking_id,
                        status="failed",
                        error_code=exc.code,
                        reason=exc.message,
                    )
                )
                continue
            result.successful += 1
            result.results.append(BulkItemResult(booking_id=booking_id, status="success"))

        self.logger.info(
            f"Bulk operation finished: {result.successful} succeeded, {result.failed} failed"
        )
        return result
