# backend/spabook/models/booking.py
"""
Booking model for the spa booking platform.

Represents an appointment for one client, one service and (optionally)
one staff member at a branch. Bookings are created by the intake flow in
``pending`` and every later status change goes through
BookingLifecycleService, which checks the transition guards before calling
the effect methods defined here.

Architecture: status and payment_status are independent axes. Status
transitions are gated by payment validity, but recording a payment never
moves the booking status.
"""

from datetime import datetime
import logging
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import BookingStatus, PaymentStatus
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class Booking(Base):
    """
    Appointment record with lifecycle and audit timestamps.

    ``version`` is bumped on every UPDATE; a write based on a stale read
    fails instead of silently double-applying a transition.
    """

    __tablename__ = "bookings"

    # Primary key
    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    booking_reference = Column(String(24), nullable=False, unique=True, index=True)

    # Core relationships
    branch_id = Column(String(26), ForeignKey("branches.id"), nullable=False, index=True)
    client_id = Column(String(26), ForeignKey("clients.id"), nullable=False)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    staff_id = Column(String(26), ForeignKey("staff.id"), nullable=True)

    # Appointment window
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Lifecycle
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)

    # Money
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(30), nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())
    confirmed_at = Column(UTCDateTime, nullable=True)
    service_started_at = Column(UTCDateTime, nullable=True)
    service_completed_at = Column(UTCDateTime, nullable=True)

    # Cancellation tracking
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    branch = relationship("Branch")
    client = relationship("Client", backref="bookings")
    service = relationship("Service", backref="bookings")
    staff = relationship("Staff", backref="bookings")
    payments = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ("
            + ", ".join(f"'{status.value}'" for status in BookingStatus)
            + ")",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ("
            + ", ".join(f"'{status.value}'" for status in PaymentStatus)
            + ")",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("total_amount >= 0", name="check_total_non_negative"),
        CheckConstraint("start_time <= end_time", name="check_time_order"),
        CheckConstraint(
            "(status = 'cancelled' AND cancelled_at IS NOT NULL AND cancellation_reason IS NOT NULL)"
            " OR (status <> 'cancelled' AND cancelled_at IS NULL AND cancellation_reason IS NULL)",
            name="check_cancellation_fields",
        ),
        CheckConstraint(
            "service_completed_at IS NULL OR service_started_at IS NULL"
            " OR service_completed_at >= service_started_at",
            name="check_service_timestamps_order",
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize new bookings in ``pending`` with a pending payment."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.PENDING.value
        logger.info(
            f"Creating booking for client {self.client_id} at branch {self.branch_id}"
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.booking_reference}: client={self.client_id}, "
            f"branch={self.branch_id}, date={self.appointment_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )

    # Effects. Guards live in services.booking_rules and must pass first.

    def confirm(self, now: datetime) -> None:
        """Mark booking as confirmed."""
        self.status = BookingStatus.CONFIRMED.value
        self.confirmed_at = now
        logger.info(f"Booking {self.id} confirmed")

    def start_service(self, now: datetime) -> None:
        """Mark the service as started."""
        self.status = BookingStatus.IN_PROGRESS.value
        self.service_started_at = now
        logger.info(f"Booking {self.id} service started")

    def complete_service(self, now: datetime) -> None:
        """Complete an in-progress service."""
        self.status = BookingStatus.COMPLETED.value
        self.service_completed_at = now
        logger.info(f"Booking {self.id} service completed")

    def complete_directly(self, now: datetime, started_at: datetime) -> None:
        """
        Complete a confirmed booking that never entered ``in_progress``.

        ``started_at`` is the back-dated start (see booking_rules.backfilled_start)
        so that duration reporting stays consistent with started services.
        """
        self.status = BookingStatus.COMPLETED.value
        self.service_started_at = started_at
        self.service_completed_at = now
        logger.info(f"Booking {self.id} completed directly, start back-filled to {started_at}")

    def cancel(self, reason: str, now: datetime) -> None:
        """Cancel this booking."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        self.cancellation_reason = reason
        logger.info(f"Booking {self.id} cancelled: {reason}")

    def mark_no_show(self) -> None:
        """Mark booking as no-show."""
        self.status = BookingStatus.NO_SHOW.value
        logger.info(f"Booking {self.id} marked as no-show")

    @property
    def scheduled_minutes(self) -> Optional[int]:
        """Length of the booked window in minutes."""
        if self.start_time is None or self.end_time is None:
            return None
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reporting consumers."""
        return {
            "id": self.id,
            "booking_reference": self.booking_reference,
            "branch_id": self.branch_id,
            "client_id": self.client_id,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "appointment_date": self.appointment_date.isoformat() if self.appointment_date else None,
            "start_time": str(self.start_time) if self.start_time else None,
            "end_time": str(self.end_time) if self.end_time else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "total_amount": float(self.total_amount) if self.total_amount is not None else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "service_started_at": (
                self.service_started_at.isoformat() if self.service_started_at else None
            ),
            "service_completed_at": (
                self.service_completed_at.isoformat() if self.service_completed_at else None
            ),
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }


Index(
    "ix_bookings_branch_date_status",
    Booking.branch_id,
    Booking.appointment_date,
    Booking.status,
)

Index(
    "ix_bookings_staff_date",
    Booking.staff_id,
    Booking.appointment_date,
)
