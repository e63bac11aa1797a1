from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from flight_booking.domain.state_machine import SeatStatus
from flight_booking.infrastructure.db.models import Base, Flight, Seat
from flight_booking.infrastructure.db.session import SessionLocal, engine


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    now = datetime.now(timezone.utc)
    target = now + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


FLIGHTS = [
    {
        "flight_number": "GA-402",
        "departure_time": _dt(days_from_now=7, hour=6, minute=15),
        "duration": timedelta(hours=1, minutes=50),
        "seat_classes": [
            {"seat_class": "Business", "rows": range(1, 3), "price": 2_400_000},
            {"seat_class": "Economy", "rows": range(3, 9), "price": 850_000},
        ],
    },
    {
        "flight_number": "GA-403",
        "departure_time": _dt(days_from_now=10, hour=18, minute=40),
        "duration": timedelta(hours=1, minutes=55),
        "seat_classes": [
            {"seat_class": "Business", "rows": range(1, 3), "price": 2_400_000},
            {"seat_class": "Economy", "rows": range(3, 9), "price": 900_000},
        ],
    },
]

SEAT_LETTERS = "ABCD"


def seed_flights(db) -> None:
    for item in FLIGHTS:
        flight = db.execute(
            select(Flight).where(Flight.flight_number == item["flight_number"])
        ).scalar_one_or_none()
        if flight is None:
            flight = Flight(flight_number=item["flight_number"])
            db.add(flight)
        flight.departure_time = item["departure_time"]
        flight.arrival_time = item["departure_time"] + item["duration"]
        db.flush()

        existing = set(
            db.execute(select(Seat.seat_name).where(Seat.flight_id == flight.id)).scalars()
        )
        for seat_class in item["seat_classes"]:
            for row in seat_class["rows"]:
                for letter in SEAT_LETTERS:
                    seat_name = f"{row}{letter}"
                    if seat_name in existing:
                        continue
                    db.add(
                        Seat(
                            flight_id=flight.id,
                            seat_name=seat_name,
                            seat_class=seat_class["seat_class"],
                            price=seat_class["price"],
                            seat_status=SeatStatus.AVAILABLE,
                        )
                    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_flights(db)
        db.commit()
        print("Seed complete: GA-402 and GA-403 with seats added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
