# backend/spabook/models/branch.py
"""
Branch, client and staff identity records.

These rows are owned by the administrative side of the business. The
lifecycle core only needs their identity to scope bookings.
"""

from sqlalchemy import Boolean, Column, String
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class Branch(Base):
    """A physical spa/salon location; every booking and capacity rule belongs to one."""

    __tablename__ = "branches"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Branch {self.id}: {self.name}>"


class Client(Base):
    """A customer who books services."""

    __tablename__ = "clients"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(32), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Client {self.id}: {self.name}>"


class Staff(Base):
    """A therapist or stylist who performs services."""

    __tablename__ = "staff"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Staff {self.id}: {self.name}>"
