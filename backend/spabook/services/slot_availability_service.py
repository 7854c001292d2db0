# backend/spabook/services/slot_availability_service.py
"""
Slot Availability Service for the spa booking platform.

Answers "can one more booking run at this branch during [start, end)?"
from the weekly TimeSlot capacity rules and the live booking rows:

- Every active rule for the branch/weekday whose window overlaps the
  candidate is checked independently.
- For each rule, bookings overlapping both the rule window and the
  candidate window are counted (cancelled bookings release their place).
- A rule is violated when ``count + 1 > max_bookings``.

Nothing is stored; every answer is recomputed from current rows. Windows
no rule covers follow UNCOVERED_WINDOW_POLICY.
"""

from datetime import date, time
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import UncoveredWindowPolicy, settings
from ..core.enums import DayOfWeek
from ..core.exceptions import ValidationException
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.time_slot_repository import TimeSlotRepository
from ..schemas.booking import AvailabilityResult, SlotViolation
from .base import BaseService

logger = logging.getLogger(__name__)

UNCOVERED_WINDOW_POLICY: UncoveredWindowPolicy = settings.uncovered_window_policy

FULLY_BOOKED_REASON = "The requested time is fully booked"
UNCOVERED_REASON = "No capacity rule covers the requested time"


class SlotAvailabilityService(BaseService):
    """
    Capacity and double-booking checks for candidate booking windows.

    Works entirely from booking rows and time-slot rules; no counters are
    cached, so a check inside a transaction sees that transaction's writes.
    """

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        time_slot_repository: Optional[TimeSlotRepository] = None,
        uncovered_window_policy: Optional[UncoveredWindowPolicy] = None,
    ):
        """
        Initialize slot availability service.

        Args:
            db: Database session
            booking_repository: Optional BookingRepository instance
            time_slot_repository: Optional TimeSlotRepository instance
            uncovered_window_policy: Override for UNCOVERED_WINDOW_POLICY
        """
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.time_slot_repository = (
            time_slot_repository or RepositoryFactory.create_time_slot_repository(db)
        )
        self.uncovered_window_policy: UncoveredWindowPolicy = (
            uncovered_window_policy or UNCOVERED_WINDOW_POLICY
        )

    def validate_time_range(self, start_time: time, end_time: time) -> None:
        """Reject empty or inverted windows."""
        if end_time <= start_time:
            raise ValidationException(
                "End time must be after start time",
                details={"start_time": str(start_time), "end_time": str(end_time)},
            )

    @BaseService.measure_operation("check_capacity")
    def check_capacity(
        self,
        branch_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
        *,
        lock_rules: bool = False,
    ) -> AvailabilityResult:
        """
        Decide whether one more booking fits the window.

        Args:
            branch_id: Branch the booking would run at
            booking_date: Appointment date
            start_time: Window start (inclusive)
            end_time: Window end (exclusive)
            exclude_booking_id: Booking to leave out of the counts (e.g. when re-checking itself)
            lock_rules: Lock the matching TimeSlot rows until the transaction ends

        Returns:
            AvailabilityResult listing every violated rule

        Raises:
            ValidationException: If end_time <= start_time
        """
        self.validate_time_range(start_time, end_time)

        rules = self.time_slot_repository.get_active_overlapping(
            branch_id,
            DayOfWeek.from_date(booking_date),
            start_time,
            end_time,
            for_update=lock_rules,
        )

        result_kwargs: Dict[str, Any] = {
            "branch_id": branch_id,
            "appointment_date": booking_date,
            "start_time": start_time,
            "end_time": end_time,
        }

        if not rules:
            available = self.uncovered_window_policy == "allow"
            return AvailabilityResult(
                **result_kwargs,
                available=available,
                covered=False,
                reason=None if available else UNCOVERED_REASON,
            )

        violations: List[SlotViolation] = []
        for rule in rules:
            # Count only inside the part of the rule the candidate actually touches.
            window_start = max(rule.start_time, start_time)
            window_end = min(rule.end_time, end_time)
            current = self.booking_repository.count_overlapping(
                branch_id,
                booking_date,
                window_start,
                window_end,
                exclude_booking_id=exclude_booking_id,
            )
            if current + 1 > rule.max_bookings:
                violations.append(
                    SlotViolation(
                        time_slot_id=rule.id,
                        day_of_week=rule.day_of_week,
                        start_time=rule.start_time,
                        end_time=rule.end_time,
                        current_bookings=current,
                        max_bookings=rule.max_bookings,
                    )
                )

        if violations:
            self.logger.info(
                f"Capacity exceeded at branch {branch_id} on {booking_date} "
                f"{start_time}-{end_time}: {len(violations)} rule(s) full"
            )

        return AvailabilityResult(
            **result_kwargs,
            available=not violations,
            covered=True,
            violations=violations,
            reason=FULLY_BOOKED_REASON if violations else None,
        )

    def count_overlapping(
        self, branch_id: str, booking_date: date, start_time: time, end_time: time
    ) -> int:
        """Number of bookings holding a place at the branch during the window."""
        self.validate_time_range(start_time, end_time)
        return self.booking_repository.count_overlapping(branch_id, booking_date, start_time, end_time)

    @BaseService.measure_operation("find_staff_conflicts")
    def find_staff_conflicts(
        self,
        staff_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Bookings that already occupy the staff member during the window.

        Returns:
            List of conflicts with booking details
        """
        self.validate_time_range(start_time, end_time)
        bookings = self.booking_repository.find_staff_conflicts(
            staff_id, booking_date, start_time, end_time, exclude_booking_id
        )
        conflicts = [self._conflict_details(booking) for booking in bookings]
        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} booking conflicts for staff {staff_id} "
                f"on {booking_date} between {start_time}-{end_time}"
            )
        return conflicts

    @BaseService.measure_operation("find_client_conflicts")
    def find_client_conflicts(
        self,
        client_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Bookings the client already holds during the window."""
        self.validate_time_range(start_time, end_time)
        bookings = self.booking_repository.find_client_conflicts(
            client_id, booking_date, start_time, end_time, exclude_booking_id
        )
        return [self._conflict_details(booking) for booking in bookings]

    @staticmethod
    def _conflict_details(booking: Any) -> Dict[str, Any]:
        return {
            "booking_id": booking.id,
            "booking_reference": booking.booking_reference,
            "branch_id": booking.branch_id,
            "start_time": str(booking.start_time),
            "end_time": str(booking.end_time),
            "status": booking.status,
        }
