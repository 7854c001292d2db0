"""
Repository layer: data access for the booking lifecycle core.

Repositories flush but never commit; services own the transaction.
"""

from .audit_repository import AuditRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .time_slot_repository import TimeSlotRepository

__all__ = [
    "AuditRepository",
    "BaseRepository",
    "BookingRepository",
    "PaymentRepository",
    "RepositoryFactory",
    "TimeSlotRepository",
]
