# backend/spabook/repositories/audit_repository.py
"""Booking audit log persistence."""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.audit_log import BookingAuditLog
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AuditRepository(BaseRepository[BookingAuditLog]):
    """Append-only access to the booking audit trail."""

    def __init__(self, db: Session):
        super().__init__(db, BookingAuditLog)

    def record(
        self,
        *,
        booking_id: str,
        action: str,
        from_status: Optional[str],
        to_status: str,
        occurred_at: datetime,
        details: Optional[Dict[str, Any]] = None,
    ) -> BookingAuditLog:
        """Append one entry. Flushed, not committed."""
        return self.create(
            booking_id=booking_id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            occurred_at=occurred_at,
            details=details or {},
        )

    def list_for_booking(self, booking_id: str) -> List[BookingAuditLog]:
        query = (
            self.db.query(BookingAuditLog)
            .filter(BookingAuditLog.booking_id == booking_id)
            .order_by(BookingAuditLog.occurred_at.asc(), BookingAuditLog.id.asc())
        )
        return self._execute_query(query)
