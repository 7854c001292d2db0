"""
Booking schemas: immutable guard snapshots plus API request/response DTOs.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..core.enums import BookingStatus, PaymentMethod, PaymentStatus
from .base import FrozenSnapshot, StandardizedModel, StrictRequestModel

# Snapshots consumed by the pure guard functions


class BookingSnapshot(FrozenSnapshot):
    """Point-in-time view of the fields the transition guards read."""

    id: str
    status: BookingStatus
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_amount: Decimal = Decimal("0")
    confirmed_at: Optional[datetime] = None
    service_started_at: Optional[datetime] = None
    service_completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class PaymentSnapshot(FrozenSnapshot):
    """Point-in-time view of one payment record."""

    id: Optional[str] = None
    amount: Decimal
    status: PaymentStatus
    payment_method: Optional[str] = None


# Requests


class BookingCreate(StrictRequestModel):
    """Intake request for a new pending booking."""

    branch_id: str
    client_id: str
    service_id: str
    staff_id: Optional[str] = None
    appointment_date: date
    start_time: time
    end_time: Optional[time] = Field(
        default=None, description="Defaults to start_time plus the service duration"
    )
    total_amount: Optional[Decimal] = Field(
        default=None, ge=0, description="Defaults to the service price"
    )
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _check_window(self) -> "BookingCreate":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class AvailabilityCheckRequest(StrictRequestModel):
    """Capacity question for a candidate window."""

    branch_id: str
    appointment_date: date
    start_time: time
    end_time: time
    exclude_booking_id: Optional[str] = None


class RecordPaymentRequest(StrictRequestModel):
    """Front-desk payment capture for a booking."""

    amount: Decimal = Field(gt=0)
    payment_method: PaymentMethod
    transaction_reference: Optional[str] = Field(default=None, max_length=100)
    payment_status: PaymentStatus = PaymentStatus.COMPLETED


class BookingCancelRequest(StrictRequestModel):
    """Cancellation with a mandatory reason."""

    reason: str = Field(max_length=1000)


class BulkConfirmRequest(StrictRequestModel):
    booking_ids: List[str] = Field(min_length=1)


class BulkCancelRequest(StrictRequestModel):
    booking_ids: List[str] = Field(min_length=1)
    reason: str = Field(max_length=1000)

    @field_validator("booking_ids")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


# Results and responses


class SlotViolation(StandardizedModel):
    """A capacity rule the candidate window would overflow."""

    time_slot_id: str
    day_of_week: str
    start_time: time
    end_time: time
    current_bookings: int
    max_bookings: int


class AvailabilityResult(StandardizedModel):
    """Admission decision for a candidate window."""

    branch_id: str
    appointment_date: date
    start_time: time
    end_time: time
    available: bool
    covered: bool = Field(description="Whether any active time-slot rule covers the window")
    violations: List[SlotViolation] = Field(default_factory=list)
    reason: Optional[str] = None


class BulkItemResult(StandardizedModel):
    """Outcome for one booking in a bulk operation."""

    booking_id: str
    status: Literal["success", "failed"]
    error_code: Optional[str] = None
    reason: Optional[str] = None


class BulkOperationResult(StandardizedModel):
    """Best-effort batch summary; failures never roll back other members."""

    successful: int = 0
    failed: int = 0
    results: List[BulkItemResult] = Field(default_factory=list)


class PaymentOverview(StandardizedModel):
    booking_id: str
    payment_status: PaymentStatus
    has_valid_payment: bool
    message: str


class BookingResponse(StandardizedModel):
    """Booking state as exposed to reporting and admin consumers."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)

    id: str
    booking_reference: str
    branch_id: str
    client_id: str
    service_id: str
    staff_id: Optional[str] = None
    appointment_date: date
    start_time: time
    end_time: time
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    total_amount: float
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    service_started_at: Optional[datetime] = None
    service_completed_at: Optional[datetime] = None
    service_duration_minutes: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
