# backend/spabook/repositories/payment_repository.py
"""
Payment Repository.

Payment rows are written by the payment subsystem at any time, so every
read here goes to the database; nothing is cached between a guard and its
effect.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.payment import Payment
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    """Repository for payment records attached to bookings."""

    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_for_booking(self, booking_id: str, *, for_update: bool = False) -> List[Payment]:
        """
        All payments for a booking, oldest first.

        Args:
            booking_id: The booking ID
            for_update: Lock the payment rows for the current transaction

        Returns:
            Payments ordered by creation time
        """
        query = (
            self.db.query(Payment)
            .filter(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.asc(), Payment.id.asc())
        )
        if for_update:
            query = self._lock(query)
        else:
            query = query.populate_existing()
        return self._execute_query(query)

    def get_primary_for_booking(self, booking_id: str) -> Optional[Payment]:
        """The booking's first payment row, which record-payment upserts."""
        payments = self.get_for_booking(booking_id, for_update=True)
        return payments[0] if payments else None
