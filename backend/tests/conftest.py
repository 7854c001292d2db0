# backend/tests/conftest.py
"""
Pytest configuration for the booking lifecycle test-suite.

Every test gets a fresh in-memory SQLite schema built from the ORM
metadata. Timestamps come from a fixed clock so durations and audit
entries can be asserted exactly.
"""

import os

# Set testing mode BEFORE any spabook imports so the engine binds to the test URL
os.environ["is_testing"] = "true"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable, Generator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session, sessionmaker

from spabook.api.dependencies.database import get_db
from spabook.core.config import settings
from spabook.core.enums import BookingStatus, DayOfWeek, PaymentMethod, PaymentStatus
from spabook.core.ulid_helper import generate_booking_reference
from spabook.database import Base, build_engine
from spabook.main import app
import spabook.models  # noqa: F401
from spabook.models.booking import Booking
from spabook.models.branch import Branch, Client, Staff
from spabook.models.payment import Payment
from spabook.models.service import Service
from spabook.models.time_slot import TimeSlot
from spabook.services.booking_lifecycle_service import BookingLifecycleService

settings.is_testing = True

# Monday, so capacity rules for DayOfWeek.MONDAY apply
APPOINTMENT_DATE = date(2025, 6, 2)
FIXED_NOW = datetime(2025, 6, 2, 10, 30, tzinfo=timezone.utc)

test_engine = build_engine(settings.test_database_url)
TestSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client bound to the test session."""

    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


# ============================================================================
# Reference data
# ============================================================================


@pytest.fixture
def branch(db: Session) -> Branch:
    branch = Branch(name="Westlands Spa")
    db.add(branch)
    db.commit()
    return branch


@pytest.fixture
def other_branch(db: Session) -> Branch:
    branch = Branch(name="Karen Spa")
    db.add(branch)
    db.commit()
    return branch


@pytest.fixture
def spa_client(db: Session) -> Client:
    customer = Client(name="Amina Otieno", email="amina@example.com", phone="+254700000001")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def other_spa_client(db: Session) -> Client:
    customer = Client(name="Brian Kamau", email="brian@example.com")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def staff_member(db: Session) -> Staff:
    member = Staff(name="Grace Wanjiru")
    db.add(member)
    db.commit()
    return member


@pytest.fixture
def service(db: Session) -> Service:
    massage = Service(name="Swedish Massage", duration_minutes=60, price=Decimal("50.00"))
    db.add(massage)
    db.commit()
    return massage


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def time_slot_factory(db: Session, branch: Branch) -> Callable[..., TimeSlot]:
    def _create(
        start_time: time,
        end_time: time,
        max_bookings: int,
        day_of_week: DayOfWeek = DayOfWeek.MONDAY,
        **overrides: Any,
    ) -> TimeSlot:
        values: dict[str, Any] = {
            "branch_id": branch.id,
            "day_of_week": day_of_week.value,
            "start_time": start_time,
            "end_time": end_time,
            "max_bookings": max_bookings,
            "is_active": True,
        }
        values.update(overrides)
        slot = TimeSlot(**values)
        db.add(slot)
        db.commit()
        return slot

    return _create


@pytest.fixture
def booking_factory(
    db: Session, branch: Branch, spa_client: Client, service: Service
) -> Callable[..., Booking]:
    def _create(**overrides: Any) -> Booking:
        values: dict[str, Any] = {
            "booking_reference": generate_booking_reference(),
            "branch_id": branch.id,
            "client_id": spa_client.id,
            "service_id": service.id,
            "staff_id": None,
            "appointment_date": APPOINTMENT_DATE,
            "start_time": time(10, 0),
            "end_time": time(11, 0),
            "status": BookingStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "total_amount": Decimal("50.00"),
        }
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking

    return _create


@pytest.fixture
def payment_factory(db: Session) -> Callable[..., Payment]:
    def _create(
        booking: Booking,
        amount: Any = None,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        **overrides: Any,
    ) -> Payment:
        values: dict[str, Any] = {
            "booking_id": booking.id,
            "branch_id": booking.branch_id,
            "amount": Decimal(str(amount)) if amount is not None else booking.total_amount,
            "payment_method": PaymentMethod.CASH.value,
            "status": status.value,
        }
        values.update(overrides)
        payment = Payment(**values)
        db.add(payment)
        db.commit()
        return payment

    return _create


@pytest.fixture
def lifecycle_service(db: Session) -> BookingLifecycleService:
    return BookingLifecycleService(db, clock=fixed_clock)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def appointment_date() -> date:
    return APPOINTMENT_DATE
