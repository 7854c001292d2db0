from .booking import (
    AvailabilityCheckRequest,
    AvailabilityResult,
    BookingCancelRequest,
    BookingCreate,
    BookingResponse,
    BookingSnapshot,
    BulkCancelRequest,
    BulkConfirmRequest,
    BulkItemResult,
    BulkOperationResult,
    PaymentOverview,
    PaymentSnapshot,
    RecordPaymentRequest,
    SlotViolation,
)

__all__ = [
    "AvailabilityCheckRequest",
    "AvailabilityResult",
    "BookingCancelRequest",
    "BookingCreate",
    "BookingResponse",
    "BookingSnapshot",
    "BulkCancelRequest",
    "BulkConfirmRequest",
    "BulkItemResult",
    "BulkOperationResult",
    "PaymentOverview",
    "PaymentSnapshot",
    "RecordPaymentRequest",
    "SlotViolation",
]
