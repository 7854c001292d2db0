# backend/spabook/models/service.py
"""Service catalog entry: what a booking is for and how long it normally takes."""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class Service(Base):
    """
    A bookable treatment (massage, facial, haircut...).

    ``duration_minutes`` is the standard length used to derive a booking's
    end time and to back-date the start of directly completed services.
    """

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(120), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("price >= 0", name="check_service_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Service {self.id}: {self.name} ({self.duration_minutes}m)>"
