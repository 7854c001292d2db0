# backend/spabook/routes/v1/bookings.py
"""
Booking lifecycle routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingLifecycleService.

Endpoints:
    POST / - Admit a new pending booking
    POST /check-availability - Check capacity for a time range
    POST /bulk/confirm - Confirm several bookings (best effort)
    POST /bulk/cancel - Cancel several bookings (best effort)
    GET /{booking_id} - Booking details
    GET /{booking_id}/payment-status - Payment validity for a booking
    POST /{booking_id}/confirm - pending -> confirmed
    POST /{booking_id}/payment - Record a payment
    POST /{booking_id}/start - Start the service
    POST /{booking_id}/complete - Complete the service
    POST /{booking_id}/cancel - Cancel with a reason
    POST /{booking_id}/no-show - Mark as no-show

Every endpoint accepts an optional ``branch_id`` query parameter; a
booking outside that branch is reported as not found.
"""

import asyncio
import logging
from typing import Any, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import get_booking_lifecycle_service
from ...core.exceptions import DomainException
from ...schemas.booking import (
    AvailabilityCheckRequest,
    AvailabilityResult,
    BookingCancelRequest,
    BookingCreate,
    BookingResponse,
    BulkCancelRequest,
    BulkConfirmRequest,
    BulkOperationResult,
    PaymentOverview,
    RecordPaymentRequest,
)
from ...services.booking_lifecycle_service import BookingLifecycleService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

BRANCH_QUERY = Query(None, description="Restrict the operation to bookings of this branch")


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _booking_id_path() -> Any:
    return Path(
        ...,
        description="Booking ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def admit_booking(
    booking_data: BookingCreate = Body(...),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """
    Admit a new booking in ``pending``.

    Fails with 409 when the slot is full or the staff member/client is
    already booked at that time.
    """
    try:
        booking = await asyncio.to_thread(lifecycle_service.admit_booking, booking_data)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/check-availability", response_model=AvailabilityResult)
async def check_availability(
    check_data: AvailabilityCheckRequest = Body(...),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> AvailabilityResult:
    """Check whether one more booking fits the window. Never mutates anything."""
    try:
        return await asyncio.to_thread(
            lifecycle_service.check_availability,
            check_data.branch_id,
            check_data.appointment_date,
            check_data.start_time,
            check_data.end_time,
            check_data.exclude_booking_id,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/bulk/confirm", response_model=BulkOperationResult)
async def bulk_confirm_bookings(
    request_data: BulkConfirmRequest = Body(...),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BulkOperationResult:
    """Confirm each booking independently; failures are reported per booking."""
    return await asyncio.to_thread(
        lifecycle_service.bulk_confirm, request_data.booking_ids, branch_id
    )


@router.post("/bulk/cancel", response_model=BulkOperationResult)
async def bulk_cancel_bookings(
    request_data: BulkCancelRequest = Body(...),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BulkOperationResult:
    """Cancel each booking independently with the same reason."""
    return await asyncio.to_thread(
        lifecycle_service.bulk_cancel, request_data.booking_ids, request_data.reason, branch_id
    )


# ============================================================================
# SECTION 2: Dynamic routes (with path parameters - placed last)
# ============================================================================


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def get_booking(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Get full booking details."""
    try:
        booking = await asyncio.to_thread(lifecycle_service.get_booking, booking_id, branch_id)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}/payment-status", response_model=PaymentOverview)
async def get_payment_status(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> PaymentOverview:
    try:
        return await asyncio.to_thread(
            lifecycle_service.get_payment_overview, booking_id, branch_id
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Confirm a pending booking. Returns 402 until a covering payment is completed."""
    try:
        booking = await asyncio.to_thread(lifecycle_service.confirm, booking_id, branch_id)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def record_payment(
    booking_id: str = _booking_id_path(),
    payment_data: RecordPaymentRequest = Body(...),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Record a payment. The booking status itself is left unchanged."""
    try:
        booking = await asyncio.to_thread(
            lifecycle_service.record_payment,
            booking_id,
            payment_data.amount,
            payment_data.payment_method,
            payment_data.transaction_reference,
            payment_data.payment_status,
            branch_id,
        )
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_service(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(lifecycle_service.start_service, booking_id, branch_id)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_service(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Mark the service as completed (directly from confirmed or after starting)."""
    try:
        booking = await asyncio.to_thread(lifecycle_service.complete_service, booking_id, branch_id)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = _booking_id_path(),
    cancel_data: BookingCancelRequest = Body(...),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Cancel a booking."""
    try:
        booking = await asyncio.to_thread(
            lifecycle_service.cancel, booking_id, cancel_data.reason, branch_id
        )
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(
    booking_id: str = _booking_id_path(),
    branch_id: Optional[str] = BRANCH_QUERY,
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Mark a booking as no-show."""
    try:
        booking = await asyncio.to_thread(lifecycle_service.mark_no_show, booking_id, branch_id)
        return lifecycle_service.to_response(booking)
    except DomainException as e:
        handle_domain_exception(e)
