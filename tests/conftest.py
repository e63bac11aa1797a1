import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from flight_booking.api.routes.routes import get_booking_service
from flight_booking.application.booking_service import BookingService
from flight_booking.domain.state_machine import BookingStatus, SeatStatus
from flight_booking.infrastructure.db.models import (
    Base,
    Booking,
    BookingDetail,
    Flight,
    Notification,
    Seat,
)
from flight_booking.infrastructure.db.session import SessionLocal, engine
from flight_booking.main import app

FLIGHT_ID = "FL1"
OWNER_ID = "user-1"


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def service() -> BookingService:
    return BookingService()


@pytest.fixture
def client(service):
    app.dependency_overrides[get_booking_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def flight(now):
    """A flight with four available seats S1..S4."""
    with SessionLocal() as db:
        db.add(
            Flight(
                id=FLIGHT_ID,
                flight_number="GA-402",
                departure_time=now + timedelta(days=7),
                arrival_time=now + timedelta(days=7, hours=2),
            )
        )
        db.flush()
        for index in range(1, 5):
            db.add(
                Seat(
                    id=f"S{index}",
                    flight_id=FLIGHT_ID,
                    seat_name=f"1{'ABCD'[index - 1]}",
                    seat_class="Economy",
                    price=500_000,
                    seat_status=SeatStatus.AVAILABLE,
                )
            )
        db.commit()
    return FLIGHT_ID


@pytest.fixture
def make_booking(flight, now):
    """Inserts a booking holding the given seats, as booking creation would leave it."""

    def _make(
        booking_code: str,
        seat_ids: list[str],
        user_id: str = OWNER_ID,
        status: BookingStatus = BookingStatus.UNPAID,
        expires_in: timedelta = timedelta(minutes=15),
    ) -> str:
        with SessionLocal() as db:
            booking = Booking(
                booking_code=booking_code,
                user_id=user_id,
                flight_id=flight,
                booking_status=status,
                booking_expired=now + expires_in,
                total_amount=500_000 * len(seat_ids),
                ordered_by_first_name="Ayu",
                ordered_by_email="ayu@example.com",
            )
            booking.details = [
                BookingDetail(seat_id=seat_id, price=500_000) for seat_id in seat_ids
            ]
            db.add(booking)
            if status is not BookingStatus.CANCELLED:
                for seat in db.execute(select(Seat).where(Seat.id.in_(seat_ids))).scalars():
                    seat.seat_status = SeatStatus.UNAVAILABLE
            db.commit()
        return booking_code

    return _make


@pytest.fixture
def booking_status():
    def _status(booking_code: str) -> BookingStatus:
        with SessionLocal() as db:
            return db.execute(
                select(Booking.booking_status).where(Booking.booking_code == booking_code)
            ).scalar_one()

    return _status


@pytest.fixture
def seat_statuses():
    def _statuses(*seat_ids: str) -> dict[str, SeatStatus]:
        with SessionLocal() as db:
            rows = db.execute(
                select(Seat.id, Seat.seat_status).where(Seat.id.in_(seat_ids))
            ).all()
        return {seat_id: seat_status for seat_id, seat_status in rows}

    return _statuses


@pytest.fixture
def notifications():
    def _titles(user_id: str = OWNER_ID) -> list[str]:
        with SessionLocal() as db:
            return list(
                db.execute(
                    select(Notification.notification_title)
                    .where(Notification.user_id == user_id)
                    .order_by(Notification.created_at)
                ).scalars()
            )

    return _titles


@pytest.fixture
def assert_seat_invariant():
    """Every seat is unavailable iff an unpaid or issued booking holds it."""

    def _check() -> None:
        with SessionLocal() as db:
            held = set(
                db.execute(
                    select(BookingDetail.seat_id)
                    .join(Booking, Booking.id == BookingDetail.booking_id)
                    .where(
                        Booking.booking_status.in_(
                            [BookingStatus.UNPAID, BookingStatus.ISSUED]
                        )
                    )
                ).scalars()
            )
            for seat in db.execute(select(Seat)).scalars():
                expected = SeatStatus.UNAVAILABLE if seat.id in held else SeatStatus.AVAILABLE
                assert seat.seat_status == expected, seat.id

    return _check
