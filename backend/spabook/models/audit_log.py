# backend/spabook/models/audit_log.py
"""
Audit trail of booking lifecycle transitions.

One row is written inside the same transaction as every successful
transition, so the log never disagrees with the booking state.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


def _now_utc() -> datetime:
    """Return timezone-aware UTC timestamp for defaults."""
    return datetime.now(timezone.utc)


class BookingAuditLog(Base):
    """Persistence model for booking audit entries."""

    __tablename__ = "booking_audit_log"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(30), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    occurred_at = Column(
        UTCDateTime,
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
    details = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )

    __table_args__ = (Index("ix_booking_audit_log_booking_occurred", "booking_id", "occurred_at"),)

    def __repr__(self) -> str:
        return (
            f"<BookingAuditLog {self.booking_id}: {self.action} "
            f"{self.from_status}->{self.to_status}>"
        )
