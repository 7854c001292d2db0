"""
Database models for the spa booking platform.

- Branch, Client, Staff: identity rows owned by administration
- Service: bookable treatments with their standard duration
- TimeSlot: per-branch weekly capacity rules
- Booking: appointment with lifecycle state and audit timestamps
- Payment: payment records consumed by the payment gate
- BookingAuditLog: one row per lifecycle transition
"""

from .audit_log import BookingAuditLog
from .booking import Booking
from .branch import Branch, Client, Staff
from .payment import Payment
from .service import Service
from .time_slot import TimeSlot

__all__ = [
    "Booking",
    "BookingAuditLog",
    "Branch",
    "Client",
    "Payment",
    "Service",
    "Staff",
    "TimeSlot",
]
