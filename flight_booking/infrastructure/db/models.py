# flight_booking/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from uuid import uuid4

from flight_booking.infrastructure.db.session import Base
from flight_booking.domain.state_machine import BookingStatus, SeatStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Flight(Base):
    __tablename__ = "flights"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    flight_number: Mapped[str] = mapped_column(String(16), nullable=False)
    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    arrival_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Seat(Base):
    """
    One physical seat on one flight.
    seat_status is only written by the booking state machine.
    """

    __tablename__ = "seats"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    flight_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flights.id"),
        nullable=False,
    )
    seat_name: Mapped[str] = mapped_column(String(8), nullable=False)
    seat_class: Mapped[str] = mapped_column(String(32), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    seat_status: Mapped[SeatStatus] = mapped_column(
        Enum(SeatStatus, name="seat_status", values_callable=_enum_values),
        nullable=False,
        default=SeatStatus.AVAILABLE,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("flight_id", "seat_name", name="uq_flight_seat_name"),
        CheckConstraint("price >= 0", name="ck_seat_price_nonnegative"),
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    DB stores current state safely.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    booking_code: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    flight_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flights.id"),
        nullable=False,
    )
    return_flight_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("flights.id"),
        nullable=True,
    )
    discount_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    booking_status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.UNPAID,
    )
    booking_expired: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ordered_by_first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    ordered_by_last_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ordered_by_phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ordered_by_email: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    details: Mapped[list["BookingDetail"]] = relationship(
        back_populates="booking",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("booking_code", name="uq_booking_code"),
        CheckConstraint("total_amount >= 0", name="ck_total_amount_nonnegative"),
        Index("ix_bookings_status_expired", "booking_status", "booking_expired"),
    )


class BookingDetail(Base):
    __tablename__ = "booking_details"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    seat_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seats.id"),
        nullable=False,
    )
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passenger_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    booking: Mapped[Booking] = relationship(back_populates="details")

    __table_args__ = (
        UniqueConstraint("booking_id", "seat_id", name="uq_booking_detail_seat"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    notification_title: Mapped[str] = mapped_column(String(255), nullable=False)
    notification_description: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_status: Mapped[str] = mapped_column(String(32), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("payload_hash", name="uq_webhook_payload_hash"),
    )
