# backend/spabook/core/exceptions.py
"""
Domain-specific exceptions for the booking platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every lifecycle failure is recoverable by the caller: no exception
in this module is raised after a partial commit.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the standard detail envelope."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when a required field is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "VALIDATION_ERROR", details=details)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "NOT_FOUND", details=details)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific lifecycle exceptions


class InvalidTransitionException(BusinessRuleException):
    """Raised when the requested status change is not permitted from the current state."""

    def __init__(
        self,
        booking_id: str,
        current_status: str,
        action: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Cannot {action} a booking that is {current_status}",
            code="INVALID_TRANSITION",
            details={
                "booking_id": booking_id,
                "current_status": current_status,
                "action": action,
            },
        )


class PaymentRequiredException(BusinessRuleException):
    """Raised when a transition needs a completed payment covering the booking total."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, booking_id: str, action: str, payment_message: str):
        super().__init__(
            message=f"Payment required to {action} booking: {payment_message}",
            code="PAYMENT_REQUIRED",
            details={
                "booking_id": booking_id,
                "action": action,
                "payment_status_message": payment_message,
            },
        )


class CapacityExceededException(ConflictException):
    """Raised when a time slot has no room for another concurrent booking."""

    def __init__(self, violations: list[Dict[str, Any]]):
        super().__init__(
            message="The requested time is fully booked at this branch",
            code="CAPACITY_EXCEEDED",
            details={"violations": violations},
        )


class BookingConflictException(ConflictException):
    """Raised when a booking overlaps another booking for the same staff member or client."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class ConcurrencyConflictException(ConflictException):
    """Raised when two operations raced on the same booking; retry the whole operation."""

    def __init__(self, booking_id: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message=message or "The booking was modified concurrently, please retry",
            code="CONCURRENCY_CONFLICT",
            details={"booking_id": booking_id} if booking_id else {},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
