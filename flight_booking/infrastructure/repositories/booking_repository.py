# flight_booking/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from flight_booking.infrastructure.db.models import Booking, BookingDetail
from flight_booking.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(
        self,
        booking_code: str,
        for_update: bool = False,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.booking_code == booking_code)
        if for_update:
            # Row lock: a concurrent transition on the same booking waits
            # here and then reads the committed status.
            stmt = stmt.with_for_update()

        return self.db.execute(stmt).scalar_one_or_none()

    def code_exists(self, booking_code: str) -> bool:
        stmt = select(Booking.id).where(Booking.booking_code == booking_code)
        return self.db.execute(stmt).first() is not None

    def list_expired_unpaid_codes(self, now: datetime) -> list[str]:
        stmt = (
            select(Booking.booking_code)
            .where(Booking.booking_status == BookingStatus.UNPAID)
            .where(Booking.booking_expired <= now)
            .order_by(Booking.booking_expired)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_seat_ids(self, booking_id: str) -> list[str]:
        stmt = (
            select(BookingDetail.seat_id)
            .where(BookingDetail.booking_id == booking_id)
            .order_by(BookingDetail.seat_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_booking(
        self,
        booking: Booking,
        details: list[BookingDetail],
    ) -> Booking:

        booking.details = details
        self.db.add(booking)
        self.db.flush()
        return booking

    def compare_and_set_status(
        self,
        booking: Booking,
        expected: BookingStatus,
        new_status: BookingStatus,
    ) -> bool:
        """
        Writes new_status only if the row still holds `expected`.
        Returns False when a concurrent writer got there first, after
        reloading the booking so callers see the winning status.
        """

        stmt = (
            update(Booking)
            .where(Booking.id == booking.id)
            .where(Booking.booking_status == expected)
            .values(booking_status=new_status)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            self.db.refresh(booking)
            return False

        booking.booking_status = new_status
        return True

    def set_payment_id(
        self,
        booking: Booking,
        payment_id: str | None,
    ) -> bool:

        if not payment_id or booking.payment_id == payment_id:
            return False

        booking.payment_id = payment_id
        self.db.flush()
        return True
