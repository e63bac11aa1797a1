# flight_booking/infrastructure/repositories/seat_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from flight_booking.infrastructure.db.models import Seat
from flight_booking.domain.exceptions import NotFoundError, SeatUnavailableError
from flight_booking.domain.state_machine import SeatStatus


class SeatRepository:

    def __init__(self, db: Session):
        self.db = db

    def lock_seats(self, seat_ids: list[str]) -> list[Seat]:
        """
        SELECT ... FOR UPDATE
        Prevents race conditions.
        """

        if not seat_ids:
            return []

        stmt = (
            select(Seat)
            .where(Seat.id.in_(seat_ids))
            .order_by(Seat.id)
            .with_for_update()
        )

        seats = list(self.db.execute(stmt).scalars().all())

        found = {seat.id for seat in seats}
        missing = sorted(set(seat_ids) - found)
        if missing:
            raise NotFoundError(f"Seat(s) not found: {', '.join(missing)}")

        return seats

    def reserve_seats(self, seat_ids: list[str]) -> None:
        """
        Flips available -> unavailable for every seat, or raises
        SeatUnavailableError if any of them is already held.
        """

        seats = self.lock_seats(seat_ids)
        taken = [seat.id for seat in seats if seat.seat_status != SeatStatus.AVAILABLE]
        if taken:
            raise SeatUnavailableError(taken)

        stmt = (
            update(Seat)
            .where(Seat.id.in_(seat_ids))
            .where(Seat.seat_status == SeatStatus.AVAILABLE)
            .values(seat_status=SeatStatus.UNAVAILABLE)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount != len(seat_ids):
            raise SeatUnavailableError(list(seat_ids))

        for seat in seats:
            seat.seat_status = SeatStatus.UNAVAILABLE

    def set_status(
        self,
        seat_ids: list[str],
        seat_status: SeatStatus,
    ) -> int:

        if not seat_ids:
            return 0

        stmt = (
            update(Seat)
            .where(Seat.id.in_(seat_ids))
            .values(seat_status=seat_status)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount

