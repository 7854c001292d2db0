# backend/tests/integration/test_concurrent_transitions.py
"""
Two sessions racing on the same booking or the same slot.

Uses a file-backed SQLite database so each session has its own
connection. The loser of a race must get ConcurrencyConflictException
(stale version), InvalidTransitionException (fresh re-read) or
CapacityExceededException (serialized admission), never a second
successful write.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
import threading
from typing import Dict, Generator, List, Tuple
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from spabook.core.enums import BookingStatus, DayOfWeek, LifecycleAction, PaymentMethod, PaymentStatus
from spabook.core.exceptions import (
    ConcurrencyConflictException,
    DomainException,
    InvalidTransitionException,
)
from spabook.database import Base, build_engine
from spabook.models.audit_log import BookingAuditLog
from spabook.models.booking import Booking
from spabook.models.branch import Branch, Client
from spabook.models.payment import Payment
from spabook.models.service import Service
from spabook.models.time_slot import TimeSlot
from spabook.schemas.booking import BookingCreate
from spabook.services import booking_rules
from spabook.services.booking_lifecycle_service import BookingLifecycleService

NOW = datetime(2025, 6, 2, 10, 30, tzinfo=timezone.utc)
APPOINTMENT_DATE = date(2025, 6, 2)  # Monday


def _service(db: Session) -> BookingLifecycleService:
    return BookingLifecycleService(db, clock=lambda: NOW)


@pytest.fixture
def race_db(tmp_path) -> Generator[Tuple[sessionmaker, Dict[str, str]], None, None]:
    """One held booking at 10:00-11:00 in a slot that takes two, plus two more clients."""
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

    setup = factory()
    branch = Branch(name="Westlands Spa")
    customer = Client(name="Amina Otieno")
    walk_in = Client(name="Brian Kamau")
    late_caller = Client(name="Chloe Wanjiru")
    massage = Service(name="Swedish Massage", duration_minutes=60, price=Decimal("50.00"))
    setup.add_all([branch, customer, walk_in, late_caller, massage])
    setup.flush()
    setup.add(
        TimeSlot(
            branch_id=branch.id,
            day_of_week=DayOfWeek.MONDAY.value,
            start_time=time(9, 0),
            end_time=time(12, 0),
            max_bookings=2,
        )
    )
    booking = Booking(
        booking_reference="SPARACE01",
        branch_id=branch.id,
        client_id=customer.id,
        service_id=massage.id,
        appointment_date=APPOINTMENT_DATE,
        start_time=time(10, 0),
        end_time=time(11, 0),
        total_amount=Decimal("50.00"),
    )
    setup.add(booking)
    setup.flush()
    setup.add(
        Payment(
            booking_id=booking.id,
            amount=Decimal("50.00"),
            payment_method=PaymentMethod.CASH.value,
            status=PaymentStatus.COMPLETED.value,
        )
    )
    setup.commit()
    ids = {
        "booking": booking.id,
        "branch": branch.id,
        "service": massage.id,
        "walk_in": walk_in.id,
        "late_caller": late_caller.id,
    }
    setup.close()

    yield factory, ids

    engine.dispose()


@pytest.fixture
def session_pair(race_db) -> Generator[Tuple[Session, Session, str], None, None]:
    factory, ids = race_db
    first, second = factory(), factory()

    yield first, second, ids["booking"]

    first.close()
    second.close()


def test_second_confirm_sees_fresh_state(session_pair):
    first, second, booking_id = session_pair
    # Both sessions have the booking cached as pending
    first.get(Booking, booking_id)
    second.get(Booking, booking_id)

    _service(first).confirm(booking_id)

    with pytest.raises(InvalidTransitionException):
        _service(second).confirm(booking_id)

    first.expire_all()
    audit_rows = first.query(BookingAuditLog).filter_by(booking_id=booking_id).all()
    assert len(audit_rows) == 1
    assert first.get(Booking, booking_id).status == BookingStatus.CONFIRMED.value


def test_simultaneous_starts_only_one_wins(session_pair):
    first, second, booking_id = session_pair
    original_can_start = booking_rules.can_start
    rival_started: List[bool] = []

    def _rival_starts_after_guard(snapshot):
        check = original_can_start(snapshot)
        if not rival_started:
            rival_started.append(True)
            _service(second).start_service(booking_id)
        return check

    with patch.object(booking_rules, "can_start", side_effect=_rival_starts_after_guard):
        with pytest.raises(ConcurrencyConflictException):
            _service(first).start_service(booking_id)

    assert rival_started == [True]
    first.expire_all()
    booking = first.get(Booking, booking_id)
    assert booking.status == BookingStatus.IN_PROGRESS.value
    assert booking.service_started_at == NOW
    starts = (
        first.query(BookingAuditLog)
        .filter_by(booking_id=booking_id, action=LifecycleAction.START.value)
        .count()
    )
    assert starts == 1


def test_stale_write_is_rejected_by_version(session_pair):
    first, second, booking_id = session_pair
    stale = first.get(Booking, booking_id)

    _service(second).cancel(booking_id, "client called")

    # First session writes from its stale version without re-reading
    stale.status = BookingStatus.CONFIRMED.value
    with pytest.raises(StaleDataError):
        first.commit()
    first.rollback()

    first.expire_all()
    assert first.get(Booking, booking_id).status == BookingStatus.CANCELLED.value


def test_lost_race_surfaces_as_concurrency_conflict(session_pair):
    first, _second, booking_id = session_pair
    service = _service(first)

    with patch.object(first, "commit", side_effect=StaleDataError("version mismatch")):
        with pytest.raises(ConcurrencyConflictException):
            service.start_service(booking_id)

    first.expire_all()
    booking = first.get(Booking, booking_id)
    assert booking.status == BookingStatus.PENDING.value
    assert first.query(BookingAuditLog).filter_by(booking_id=booking_id).count() == 0


def test_concurrent_admissions_cannot_oversell_slot(race_db):
    factory, ids = race_db
    first, second = factory(), factory()

    def _request(client_id: str) -> BookingCreate:
        return BookingCreate(
            branch_id=ids["branch"],
            client_id=client_id,
            service_id=ids["service"],
            appointment_date=APPOINTMENT_DATE,
            start_time=time(10, 0),
        )

    rival_outcomes: List[str] = []

    def _rival_admission() -> None:
        try:
            _service(second).admit_booking(_request(ids["late_caller"]))
            rival_outcomes.append("admitted")
        except DomainException as exc:
            rival_outcomes.append(exc.code)

    rival = threading.Thread(target=_rival_admission)
    service = _service(first)
    original_double_booking_check = service._ensure_no_double_booking
    rival_blocked: List[bool] = []

    def _rival_arrives_after_capacity_check(data, end_time):
        # Capacity has been counted with one place left; the rival tries to take it now
        rival.start()
        rival.join(timeout=0.5)
        rival_blocked.append(rival.is_alive())
        original_double_booking_check(data, end_time)

    try:
        with patch.object(
            service, "_ensure_no_double_booking", side_effect=_rival_arrives_after_capacity_check
        ):
            admitted = service.admit_booking(_request(ids["walk_in"]))
        rival.join(timeout=10)

        assert admitted.status == BookingStatus.PENDING.value
        assert rival_blocked == [True]
        assert rival_outcomes == ["CAPACITY_EXCEEDED"]

        first.expire_all()
        held = (
            first.query(Booking)
            .filter(Booking.status != BookingStatus.CANCELLED.value)
            .count()
        )
        assert held == 2
    finally:
        first.close()
        second.close()
