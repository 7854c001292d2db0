# backend/spabook/repositories/time_slot_repository.py
"""Time-slot capacity rule queries."""

from datetime import time
import logging
from typing import List

from sqlalchemy.orm import Session

from ..core.enums import DayOfWeek
from ..models.time_slot import TimeSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TimeSlotRepository(BaseRepository[TimeSlot]):
    """Read access to the per-branch weekly capacity rules."""

    def __init__(self, db: Session):
        super().__init__(db, TimeSlot)

    def get_active_overlapping(
        self,
        branch_id: str,
        day_of_week: DayOfWeek,
        start_time: time,
        end_time: time,
        *,
        for_update: bool = False,
    ) -> List[TimeSlot]:
        """
        Active rules for a branch and weekday whose window overlaps ``[start_time, end_time)``.

        With ``for_update`` the matching rule rows are locked, which serializes
        concurrent admissions competing for the same slots.
        """
        query = (
            self.db.query(TimeSlot)
            .filter(
                TimeSlot.branch_id == branch_id,
                TimeSlot.day_of_week == day_of_week.value,
                TimeSlot.is_active.is_(True),
                TimeSlot.start_time < end_time,
                TimeSlot.end_time > start_time,
            )
            .order_by(TimeSlot.start_time.asc(), TimeSlot.id.asc())
        )
        if for_update:
            query = self._lock(query)
        return self._execute_query(query)
