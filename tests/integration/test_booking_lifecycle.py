from datetime import timedelta

import pytest
from sqlalchemy import update

from flight_booking.application.booking_service import BookingSeat
from flight_booking.domain.exceptions import (
    BookingValidationError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransactionStatusError,
    NotFoundError,
    SeatUnavailableError,
    UnauthenticatedError,
)
from flight_booking.domain.state_machine import BookingStatus, SeatStatus, TransitionAction
from flight_booking.infrastructure.db.models import Booking
from flight_booking.infrastructure.db.session import SessionLocal
from flight_booking.infrastructure.repositories.booking_repository import BookingRepository

UNAVAILABLE = SeatStatus.UNAVAILABLE
AVAILABLE = SeatStatus.AVAILABLE


# ---------------------
# CREATE
# ---------------------

def test_create_reserves_seats_and_waits_for_payment(
    service, flight, seat_statuses, notifications, now, assert_seat_invariant
):
    booking = service.create_booking(
        user_id="user-1",
        flight_id=flight,
        seats=[BookingSeat("S1", "Ayu"), BookingSeat("S2", "Budi")],
        ordered_by_first_name="Ayu",
        ordered_by_email="ayu@example.com",
    )

    assert booking.booking_status is BookingStatus.UNPAID
    assert booking.total_amount == 1_000_000
    assert len(booking.booking_code) == 8
    assert timedelta(minutes=14) < booking.booking_expired - now <= timedelta(minutes=16)
    assert [detail.seat_id for detail in booking.details] == ["S1", "S2"]
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    assert notifications() == [f"Order Status {booking.booking_code}"]
    assert_seat_invariant()


def test_create_fails_when_a_seat_is_taken(service, make_booking, seat_statuses):
    make_booking("BK001", ["S1"])

    with pytest.raises(SeatUnavailableError):
        service.create_booking(
            user_id="user-2",
            flight_id="FL1",
            seats=[BookingSeat("S2"), BookingSeat("S1")],
            ordered_by_first_name="Citra",
            ordered_by_email="citra@example.com",
        )

    # the whole creation rolled back, S2 was not left reserved
    assert seat_statuses("S2") == {"S2": AVAILABLE}
    with SessionLocal() as db:
        assert db.query(Booking).count() == 1


def test_create_validates_input(service, flight):
    kwargs = dict(
        flight_id=flight,
        ordered_by_first_name="Ayu",
        ordered_by_email="ayu@example.com",
    )
    with pytest.raises(UnauthenticatedError):
        service.create_booking(user_id=None, seats=[BookingSeat("S1")], **kwargs)
    with pytest.raises(BookingValidationError):
        service.create_booking(user_id="user-1", seats=[], **kwargs)
    with pytest.raises(BookingValidationError):
        service.create_booking(
            user_id="user-1", seats=[BookingSeat("S1"), BookingSeat("S1")], **kwargs
        )
    with pytest.raises(NotFoundError):
        service.create_booking(user_id="user-1", seats=[BookingSeat("S9")], **kwargs)


def test_create_unknown_flight(service, flight):
    with pytest.raises(NotFoundError):
        service.create_booking(
            user_id="user-1",
            flight_id="FL1",
            return_flight_id="FL404",
            seats=[BookingSeat("S1")],
            ordered_by_first_name="Ayu",
            ordered_by_email="ayu@example.com",
        )


# ---------------------
# WEBHOOK
# ---------------------

def test_settlement_issues_booking(
    service, make_booking, booking_status, seat_statuses, notifications
):
    make_booking("BK123", ["S1", "S2"])

    result = service.handle_payment_notification("settlement", "BK123", "trx-1")

    assert result.action is TransitionAction.APPLY
    assert booking_status("BK123") is BookingStatus.ISSUED
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    titles = notifications()
    assert len(titles) == 1
    assert "BK123" in titles[0]
    with SessionLocal() as db:
        assert db.query(Booking).filter_by(booking_code="BK123").one().payment_id == "trx-1"


def test_settlement_is_idempotent(
    service, make_booking, booking_status, seat_statuses, notifications, assert_seat_invariant
):
    make_booking("BK123", ["S1", "S2"])

    service.handle_payment_notification("settlement", "BK123", "trx-1")
    replay = service.handle_payment_notification("settlement", "BK123", "trx-1")
    capture = service.handle_payment_notification("capture", "BK123", "trx-1")

    assert replay.duplicate
    assert capture.action is TransitionAction.REASSERT
    assert booking_status("BK123") is BookingStatus.ISSUED
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    assert len(notifications()) == 1
    assert_seat_invariant()


@pytest.mark.parametrize(
    "transaction_status, phrase",
    [
        ("deny", "rejected"),
        ("expire", "expired"),
        ("cancel", "cancelled"),
        ("failure", "failed"),
    ],
)
def test_failed_payment_cancels_and_releases_seats(
    service, make_booking, booking_status, seat_statuses, transaction_status, phrase
):
    make_booking("BK123", ["S1", "S2"])
    sent = []
    service.notifier.send = sent.append

    result = service.handle_payment_notification(transaction_status, "BK123")

    assert result.action is TransitionAction.APPLY
    assert booking_status("BK123") is BookingStatus.CANCELLED
    assert seat_statuses("S1", "S2") == {"S1": AVAILABLE, "S2": AVAILABLE}
    assert len(sent) == 1
    assert phrase in sent[0].description


def test_pending_records_payment_id_only(
    service, make_booking, booking_status, seat_statuses, notifications
):
    make_booking("BK123", ["S1"])

    service.handle_payment_notification("pending", "BK123", "trx-9")

    assert booking_status("BK123") is BookingStatus.UNPAID
    assert seat_statuses("S1") == {"S1": UNAVAILABLE}
    assert notifications() == []
    with SessionLocal() as db:
        assert db.query(Booking).filter_by(booking_code="BK123").one().payment_id == "trx-9"


def test_failure_after_issue_is_ignored(service, make_booking, booking_status, seat_statuses):
    make_booking("BK123", ["S1"])
    service.handle_payment_notification("settlement", "BK123", "trx-1")

    result = service.handle_payment_notification("deny", "BK123", "trx-1")

    assert result.action is TransitionAction.SKIP
    assert booking_status("BK123") is BookingStatus.ISSUED
    assert seat_statuses("S1") == {"S1": UNAVAILABLE}


def test_unknown_transaction_status_mutates_nothing(
    service, make_booking, booking_status, seat_statuses, notifications
):
    make_booking("BK123", ["S1", "S2"])

    with pytest.raises(InvalidTransactionStatusError):
        service.handle_payment_notification("unknown_value", "BK123")

    assert booking_status("BK123") is BookingStatus.UNPAID
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    assert notifications() == []


def test_webhook_for_unknown_booking(service, flight):
    with pytest.raises(NotFoundError):
        service.handle_payment_notification("settlement", "NOPE")


def test_booking_without_details_transitions_cleanly(service, make_booking, booking_status):
    make_booking("BK000", [])

    service.handle_payment_notification("expire", "BK000")

    assert booking_status("BK000") is BookingStatus.CANCELLED


def test_notification_failure_does_not_roll_back(service, make_booking, booking_status):
    make_booking("BK123", ["S1"])

    def broken(message):
        raise RuntimeError("notification store down")

    service.notifier.send = broken

    result = service.handle_payment_notification("settlement", "BK123")

    assert result.applied
    assert booking_status("BK123") is BookingStatus.ISSUED


# ---------------------
# USER CANCEL
# ---------------------

def test_owner_cancels_unpaid_booking(
    service, make_booking, booking_status, seat_statuses, notifications, assert_seat_invariant
):
    make_booking("BK123", ["S1", "S2"])

    result = service.cancel_booking("BK123", "user-1")

    assert result.action is TransitionAction.APPLY
    assert booking_status("BK123") is BookingStatus.CANCELLED
    assert seat_statuses("S1", "S2") == {"S1": AVAILABLE, "S2": AVAILABLE}
    assert notifications() == ["Order Status BK123 is Cancelled"]
    assert_seat_invariant()


@pytest.mark.parametrize(
    "status",
    [BookingStatus.UNPAID, BookingStatus.ISSUED, BookingStatus.CANCELLED],
)
def test_cancel_by_other_user_is_forbidden(service, make_booking, booking_status, status):
    make_booking("BK123", ["S1"], status=status)

    with pytest.raises(ForbiddenError):
        service.cancel_booking("BK123", "intruder")

    assert booking_status("BK123") is status


@pytest.mark.parametrize("status", [BookingStatus.ISSUED, BookingStatus.CANCELLED])
def test_cancel_guards_status(service, make_booking, seat_statuses, status):
    make_booking("BK123", ["S1"], status=status)
    before = seat_statuses("S1")

    with pytest.raises(InvalidStateError, match=f"already {status.value}"):
        service.cancel_booking("BK123", "user-1")

    assert seat_statuses("S1") == before


def test_cancel_unknown_booking(service, flight):
    with pytest.raises(NotFoundError):
        service.cancel_booking("NOPE", "user-1")


def test_cancel_requires_identity(service, make_booking):
    make_booking("BK123", ["S1"])

    with pytest.raises(UnauthenticatedError):
        service.cancel_booking("BK123", None)


# ---------------------
# RACES
# ---------------------

def test_settlement_beats_stale_expiry(
    service, make_booking, booking_status, seat_statuses, now, assert_seat_invariant
):
    make_booking("BK123", ["S1", "S2"], expires_in=timedelta(minutes=-5))
    candidates = service.list_expired_unpaid(now)
    assert candidates == ["BK123"]

    # webhook lands between the sweep's query and its transition
    service.handle_payment_notification("settlement", "BK123", "trx-1")
    result = service.expire_booking("BK123", now=now)

    assert result.action is TransitionAction.SKIP
    assert booking_status("BK123") is BookingStatus.ISSUED
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    assert_seat_invariant()


def test_expiry_beats_late_settlement(
    service, make_booking, booking_status, seat_statuses, now, assert_seat_invariant
):
    make_booking("BK123", ["S1", "S2"], expires_in=timedelta(minutes=-5))

    service.expire_booking("BK123", now=now)
    result = service.handle_payment_notification("settlement", "BK123", "trx-1")

    assert result.action is TransitionAction.SKIP
    assert booking_status("BK123") is BookingStatus.CANCELLED
    assert seat_statuses("S1", "S2") == {"S1": AVAILABLE, "S2": AVAILABLE}
    assert_seat_invariant()


def test_status_changed_after_read_is_a_noop(
    service,
    make_booking,
    booking_status,
    seat_statuses,
    notifications,
    now,
    assert_seat_invariant,
    monkeypatch,
):
    make_booking("BK123", ["S1", "S2"], expires_in=timedelta(minutes=-5))
    sent_before = notifications()
    read_booking = BookingRepository.get_by_code

    def read_then_settle(self, booking_code, for_update=False):
        booking = read_booking(self, booking_code, for_update=for_update)
        # another writer issues the booking once the row is in hand
        self.db.execute(
            update(Booking)
            .where(Booking.booking_code == booking_code)
            .values(booking_status=BookingStatus.ISSUED)
            .execution_options(synchronize_session=False)
        )
        return booking

    monkeypatch.setattr(BookingRepository, "get_by_code", read_then_settle)
    result = service.expire_booking("BK123", now=now)
    monkeypatch.undo()

    assert result.action is TransitionAction.SKIP
    assert result.status is BookingStatus.ISSUED
    assert booking_status("BK123") is BookingStatus.ISSUED
    assert seat_statuses("S1", "S2") == {"S1": UNAVAILABLE, "S2": UNAVAILABLE}
    assert notifications() == sent_before
    assert_seat_invariant()


def test_expiry_does_not_touch_bookings_within_deadline(
    service, make_booking, booking_status, now
):
    make_booking("BK123", ["S1"], expires_in=timedelta(minutes=10))

    result = service.expire_booking("BK123", now=now)

    assert result.action is TransitionAction.SKIP
    assert booking_status("BK123") is BookingStatus.UNPAID
