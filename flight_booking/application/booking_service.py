import logging
import os
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from flight_booking.domain import notifications
from flight_booking.domain.exceptions import (
    BookingValidationError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
)
from flight_booking.domain.notifications import NotificationMessage
from flight_booking.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    BookingTrigger,
    TransactionStatus,
    TransitionAction,
)
from flight_booking.infrastructure.db.models import Booking, BookingDetail, Flight
from flight_booking.infrastructure.db.session import get_db_session
from flight_booking.infrastructure.notifications.notification_sink import NotificationSink
from flight_booking.infrastructure.payment.payment_status_gateway import PaymentStatusGateway
from flight_booking.infrastructure.repositories.booking_repository import BookingRepository
from flight_booking.infrastructure.repositories.seat_repository import SeatRepository
from flight_booking.infrastructure.repositories.webhook_event_repository import (
    WebhookEventRepository,
    hash_webhook_payload,
)

logger = logging.getLogger(__name__)

PAYMENT_WINDOW_MINUTES = int(os.getenv("BOOKING_PAYMENT_WINDOW_MINUTES", "15"))
BOOKING_CODE_LENGTH = 8
_BOOKING_CODE_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookingSeat(NamedTuple):
    seat_id: str
    passenger_name: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    booking_code: str
    trigger: BookingTrigger
    action: TransitionAction
    status: BookingStatus
    duplicate: bool = False

    @property
    def applied(self) -> bool:
        return self.action in (TransitionAction.APPLY, TransitionAction.REASSERT)


@dataclass(frozen=True)
class _WebhookDelivery:
    transaction_status: TransactionStatus
    transaction_id: str | None
    payload_hash: str


class BookingService:
    """
    Applies booking lifecycle transitions.

    Every transition runs in one database transaction that locks the
    booking row, resolves the transition from the state machine table
    against the locked status, and writes booking and seat rows
    together. Notifications go out only after that transaction commits.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        notifier: NotificationSink | None = None,
        gateway: PaymentStatusGateway | None = None,
        clock: Callable[[], datetime] = utc_now,
        payment_window_minutes: int = PAYMENT_WINDOW_MINUTES,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NotificationSink(session_factory)
        self.gateway = gateway or PaymentStatusGateway()
        self.clock = clock
        self.payment_window = timedelta(minutes=payment_window_minutes)

    # -----------------------------
    # Create
    # -----------------------------
    def create_booking(
        self,
        user_id: str | None,
        flight_id: str,
        seats: list[BookingSeat],
        ordered_by_first_name: str,
        ordered_by_email: str,
        ordered_by_last_name: str | None = None,
        ordered_by_phone_number: str | None = None,
        return_flight_id: str | None = None,
        discount_id: str | None = None,
    ) -> Booking:
        if not user_id:
            raise UnauthenticatedError("Booking error, please log in")

        seat_ids = [seat.seat_id for seat in seats]
        if not seat_ids:
            raise BookingValidationError("At least one seat is required")
        if len(set(seat_ids)) != len(seat_ids):
            raise BookingValidationError("Duplicate seat in booking request")

        with get_db_session(self.session_factory) as db:
            flight_ids = {flight_id}
            if return_flight_id:
                flight_ids.add(return_flight_id)
            found_flights = set(
                db.execute(select(Flight.id).where(Flight.id.in_(flight_ids))).scalars()
            )
            missing = sorted(flight_ids - found_flights)
            if missing:
                raise NotFoundError(f"Flight(s) not found: {', '.join(missing)}")

            seat_repository = SeatRepository(db)
            locked = {seat.id: seat for seat in seat_repository.lock_seats(seat_ids)}
            foreign = [
                seat_id for seat_id in seat_ids
                if locked[seat_id].flight_id not in flight_ids
            ]
            if foreign:
                raise BookingValidationError(
                    f"Seat(s) do not belong to the booked flights: {', '.join(foreign)}"
                )

            seat_repository.reserve_seats(seat_ids)

            booking_repository = BookingRepository(db)
            booking = Booking(
                booking_code=self._new_booking_code(booking_repository),
                user_id=user_id,
                flight_id=flight_id,
                return_flight_id=return_flight_id,
                discount_id=discount_id,
                booking_status=BookingStatus.UNPAID,
                booking_expired=self.clock() + self.payment_window,
                payment_id=None,
                total_amount=sum(locked[seat_id].price for seat_id in seat_ids),
                ordered_by_first_name=ordered_by_first_name,
                ordered_by_last_name=ordered_by_last_name,
                ordered_by_phone_number=ordered_by_phone_number,
                ordered_by_email=ordered_by_email,
            )
            details = [
                BookingDetail(
                    seat_id=seat.seat_id,
                    price=locked[seat.seat_id].price,
                    passenger_name=seat.passenger_name,
                )
                for seat in seats
            ]
            booking_repository.create_booking(booking, details)

        logger.info(
            "Booking created. booking_code=%s user_id=%s seats=%s",
            booking.booking_code,
            user_id,
            seat_ids,
        )
        self._notify(notifications.awaiting_payment(booking.booking_code, user_id))
        return booking

    # -----------------------------
    # Triggers
    # -----------------------------
    def handle_payment_notification(
        self,
        transaction_status: str | None,
        order_id: str | None,
        transaction_id: str | None = None,
    ) -> TransitionResult:
        status = TransactionStatus.parse(transaction_status)
        if not order_id:
            raise NotFoundError("Booking not found")

        delivery = _WebhookDelivery(
            transaction_status=status,
            transaction_id=transaction_id,
            payload_hash=hash_webhook_payload(order_id, status.value, transaction_id),
        )
        try:
            return self._apply(order_id, status.trigger, delivery=delivery)
        except IntegrityError:
            # An identical delivery committed first.
            logger.info(
                "Concurrent duplicate webhook ignored. order_id=%s status=%s",
                order_id,
                status.value,
            )
            return TransitionResult(
                booking_code=order_id,
                trigger=status.trigger,
                action=TransitionAction.SKIP,
                status=self._current_status(order_id),
                duplicate=True,
            )

    def cancel_booking(self, booking_code: str, user_id: str | None) -> TransitionResult:
        if not user_id:
            raise UnauthenticatedError("Please log in to your account")
        return self._apply(booking_code, BookingTrigger.USER_CANCEL, user_id=user_id)

    def expire_booking(
        self,
        booking_code: str,
        now: datetime | None = None,
    ) -> TransitionResult:
        return self._apply(booking_code, BookingTrigger.EXPIRY_SWEEP, now=now)

    def list_expired_unpaid(self, now: datetime | None = None) -> list[str]:
        now = now or self.clock()
        with get_db_session(self.session_factory) as db:
            return BookingRepository(db).list_expired_unpaid_codes(now)

    # -----------------------------
    # Payment status passthrough
    # -----------------------------
    def get_payment_status(self, booking_code: str) -> dict:
        with get_db_session(self.session_factory) as db:
            if not BookingRepository(db).code_exists(booking_code):
                raise NotFoundError("Booking code not found")

        return self.gateway.get_transaction_status(booking_code)

    # -----------------------------
    # Internals
    # -----------------------------
    def _apply(
        self,
        booking_code: str,
        trigger: BookingTrigger,
        user_id: str | None = None,
        now: datetime | None = None,
        delivery: _WebhookDelivery | None = None,
    ) -> TransitionResult:
        notification: NotificationMessage | None = None

        with get_db_session(self.session_factory) as db:
            booking_repository = BookingRepository(db)
            booking = booking_repository.get_by_code(booking_code, for_update=True)
            if not booking:
                raise NotFoundError("Booking not found")

            if trigger is BookingTrigger.USER_CANCEL and booking.user_id != user_id:
                raise ForbiddenError("Cannot cancel booking, this is not your booking")

            current = booking.booking_status

            webhook_events = WebhookEventRepository(db)
            if delivery and webhook_events.get_by_hash(delivery.payload_hash):
                logger.info(
                    "Duplicate webhook ignored. order_id=%s status=%s",
                    booking_code,
                    delivery.transaction_status.value,
                )
                return TransitionResult(
                    booking_code, trigger, TransitionAction.SKIP, current, duplicate=True
                )

            transition = BookingStateMachine.resolve(trigger, current)
            action = transition.action

            if trigger is BookingTrigger.EXPIRY_SWEEP and action is TransitionAction.APPLY:
                deadline = as_utc(booking.booking_expired)
                if deadline > (now or self.clock()):
                    action = TransitionAction.SKIP

            if action is TransitionAction.APPLY and transition.to_status:
                if not booking_repository.compare_and_set_status(
                    booking, current, transition.to_status
                ):
                    action = TransitionAction.SKIP

            if action is not TransitionAction.SKIP:
                if delivery and trigger in (
                    BookingTrigger.PAYMENT_SETTLED,
                    BookingTrigger.PAYMENT_PENDING,
                ):
                    if trigger is BookingTrigger.PAYMENT_PENDING or not booking.payment_id:
                        booking_repository.set_payment_id(booking, delivery.transaction_id)

                if transition.seat_status:
                    seat_ids = booking_repository.get_seat_ids(booking.id)
                    SeatRepository(db).set_status(seat_ids, transition.seat_status)

                if action is TransitionAction.APPLY:
                    notification = self._notification_for(booking, trigger, delivery)
            else:
                logger.warning(
                    "Transition skipped. booking_code=%s trigger=%s status=%s",
                    booking_code,
                    trigger.value,
                    booking.booking_status.value,
                )

            if delivery:
                webhook_events.record(
                    order_id=booking_code,
                    transaction_status=delivery.transaction_status.value,
                    transaction_id=delivery.transaction_id,
                    payload_hash=delivery.payload_hash,
                    outcome=action.value,
                )

            result = TransitionResult(
                booking_code=booking_code,
                trigger=trigger,
                action=action,
                status=booking.booking_status,
            )

        logger.info(
            "Transition %s. booking_code=%s trigger=%s status=%s",
            result.action.value,
            booking_code,
            trigger.value,
            result.status.value,
        )
        if notification:
            self._notify(notification)
        return result

    def _notification_for(
        self,
        booking: Booking,
        trigger: BookingTrigger,
        delivery: _WebhookDelivery | None,
    ) -> NotificationMessage | None:
        code, user_id = booking.booking_code, booking.user_id
        if trigger is BookingTrigger.PAYMENT_SETTLED:
            return notifications.paid(code, user_id)
        if trigger is BookingTrigger.PAYMENT_FAILED and delivery:
            return notifications.payment_failed(code, user_id, delivery.transaction_status)
        if trigger is BookingTrigger.USER_CANCEL:
            return notifications.cancelled_by_user(code, user_id)
        if trigger is BookingTrigger.EXPIRY_SWEEP:
            return notifications.expired(code, user_id)
        return None

    def _notify(self, message: NotificationMessage) -> None:
        try:
            self.notifier.send(message)
        except Exception:
            logger.exception(
                "Notification dispatch failed. user_id=%s title=%s",
                message.user_id,
                message.title,
            )

    def _current_status(self, booking_code: str) -> BookingStatus:
        with get_db_session(self.session_factory) as db:
            booking = BookingRepository(db).get_by_code(booking_code)
            if not booking:
                raise NotFoundError("Booking not found")
            return booking.booking_status

    @staticmethod
    def _new_booking_code(repository: BookingRepository) -> str:
        while True:
            code = "".join(
                secrets.choice(_BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_LENGTH)
            )
            if not repository.code_exists(code):
                return code
