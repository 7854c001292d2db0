# backend/spabook/repositories/booking_repository.py
"""
Booking Repository for the spa booking platform.

Implements the data access behind the lifecycle service:
- Locked single-booking reads for guarded transitions
- Interval overlap counting for slot capacity
- Staff and client double-booking queries
- Booking reference uniqueness checks

All time comparisons use half-open intervals:
``start_time < other_end AND end_time > other_start``.
"""

from datetime import date, time
import logging
from typing import Iterable, List, Optional, cast

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from ..core.enums import BookingStatus
from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Bookings in these states no longer hold a place in a time slot.
CAPACITY_RELEASED_STATUSES = (BookingStatus.CANCELLED.value,)

# Bookings in these states no longer block the staff member or client.
CONFLICT_RELEASED_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        """Initialize with Booking model."""
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    # Single-booking reads

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """
        Load a booking for a guarded transition.

        The row stays locked until the caller's transaction ends, and any
        attributes cached in the session are overwritten with the row as it
        is now.
        """
        try:
            query = self.db.query(Booking).filter(Booking.id == booking_id)
            return cast(Optional[Booking], self._lock(query).first())
        except Exception as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking for update: {str(e)}") from e

    def get_booking_with_details(self, booking_id: str) -> Optional[Booking]:
        """
        Get a booking with its service and payments loaded.

        Args:
            booking_id: The booking ID

        Returns:
            The booking with relationships, or None if not found
        """
        try:
            booking: Booking | None = (
                self._apply_eager_loading(self.db.query(Booking))
                .filter(Booking.id == booking_id)
                .first()
            )
            return booking
        except Exception as e:
            self.logger.error(f"Error getting booking details: {str(e)}")
            raise RepositoryException(f"Failed to get booking details: {str(e)}") from e

    def reference_exists(self, booking_reference: str) -> bool:
        return self.exists(booking_reference=booking_reference)

    # Capacity queries

    def count_overlapping(
        self,
        branch_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> int:
        """
        Count bookings at a branch that overlap ``[start_time, end_time)``.

        Cancelled bookings release their place and are not counted.
        """
        query = self._overlap_query(
            booking_date,
            start_time,
            end_time,
            released_statuses=CAPACITY_RELEASED_STATUSES,
            exclude_booking_id=exclude_booking_id,
        ).filter(Booking.branch_id == branch_id)
        count = self._execute_scalar(query.with_entities(func.count(Booking.id)))
        return int(count or 0)

    # Double-booking queries

    def find_staff_conflicts(
        self,
        staff_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Bookings that already hold this staff member during the window.

        Args:
            staff_id: The therapist/stylist ID
            booking_date: The date to check
            start_time: Start time to check
            end_time: End time to check
            exclude_booking_id: Optional booking to exclude

        Returns:
            List of conflicting bookings (empty if no conflicts)
        """
        query = self._overlap_query(
            booking_date,
            start_time,
            end_time,
            released_statuses=CONFLICT_RELEASED_STATUSES,
            exclude_booking_id=exclude_booking_id,
        ).filter(Booking.staff_id == staff_id)
        return self._execute_query(query.order_by(Booking.start_time))

    def find_client_conflicts(
        self,
        client_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings the client already holds during the window, at any branch."""
        query = self._overlap_query(
            booking_date,
            start_time,
            end_time,
            released_statuses=CONFLICT_RELEASED_STATUSES,
            exclude_booking_id=exclude_booking_id,
        ).filter(Booking.client_id == client_id)
        return self._execute_query(query.order_by(Booking.start_time))

    # Helper method overrides

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Booking.service),
            joinedload(Booking.payments),
        )

    def _overlap_query(
        self,
        booking_date: date,
        start_time: time,
        end_time: time,
        *,
        released_statuses: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> Query:
        query = self.db.query(Booking).filter(
            Booking.appointment_date == booking_date,
            Booking.status.notin_(list(released_statuses)),
            # Time overlap check: start_time < other_end_time AND end_time > other_start_time
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query
