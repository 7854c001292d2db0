# backend/spabook/models/time_slot.py
"""
Time-slot capacity rules.

A rule caps how many bookings may run concurrently inside a weekly
[start_time, end_time) window at one branch. Rules are configuration
maintained by administrators; the booking core only reads them.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import DayOfWeek
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class TimeSlot(Base):
    """Weekly concurrency ceiling for a branch."""

    __tablename__ = "time_slots"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    branch_id = Column(String(26), ForeignKey("branches.id"), nullable=False)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_bookings = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())

    branch = relationship("Branch")

    __table_args__ = (
        CheckConstraint(
            "day_of_week IN ("
            + ", ".join(f"'{day.value}'" for day in DayOfWeek)
            + ")",
            name="ck_time_slots_day_of_week",
        ),
        CheckConstraint("max_bookings >= 0", name="check_max_bookings_non_negative"),
        CheckConstraint("start_time < end_time", name="check_slot_time_order"),
        Index("ix_time_slots_branch_day", "branch_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return (
            f"<TimeSlot {self.id}: branch={self.branch_id}, {self.day_of_week} "
            f"{self.start_time}-{self.end_time}, max={self.max_bookings}>"
        )
