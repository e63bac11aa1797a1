# flight_booking/domain/state_machine.py

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Set, Tuple

from flight_booking.domain.exceptions import (
    InvalidStateError,
    InvalidTransactionStatusError,
)


class BookingStatus(str, Enum):
    UNPAID = "unpaid"
    ISSUED = "issued"
    CANCELLED = "cancelled"


class SeatStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class BookingTrigger(str, Enum):
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_FAILED = "payment_failed"
    USER_CANCEL = "user_cancel"
    EXPIRY_SWEEP = "expiry_sweep"


class TransitionAction(str, Enum):
    # change status (or record payment id) and update seats
    APPLY = "apply"
    # status already reached; re-assert seats only
    REASSERT = "reassert"
    # nothing to do, not an error
    SKIP = "skip"
    # caller error
    REJECT = "reject"


class TransactionStatus(str, Enum):
    """Transaction statuses reported by the payment provider's webhook."""

    CAPTURE = "capture"
    SETTLEMENT = "settlement"
    PENDING = "pending"
    DENY = "deny"
    EXPIRE = "expire"
    CANCEL = "cancel"
    FAILURE = "failure"

    @classmethod
    def parse(cls, value: str | None) -> "TransactionStatus":
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidTransactionStatusError(value) from exc

    @property
    def trigger(self) -> BookingTrigger:
        if self in (TransactionStatus.CAPTURE, TransactionStatus.SETTLEMENT):
            return BookingTrigger.PAYMENT_SETTLED
        if self is TransactionStatus.PENDING:
            return BookingTrigger.PAYMENT_PENDING
        return BookingTrigger.PAYMENT_FAILED


@dataclass(frozen=True)
class Transition:
    action: TransitionAction
    to_status: BookingStatus | None = None
    seat_status: SeatStatus | None = None


_APPLY_ISSUE = Transition(
    TransitionAction.APPLY, BookingStatus.ISSUED, SeatStatus.UNAVAILABLE
)
_APPLY_CANCEL = Transition(
    TransitionAction.APPLY, BookingStatus.CANCELLED, SeatStatus.AVAILABLE
)
_SKIP = Transition(TransitionAction.SKIP)
_REJECT = Transition(TransitionAction.REJECT)


class BookingStateMachine:
    """
    Central lifecycle controller for booking transitions.

    Two tables live here: the legal status edges, and the full
    trigger x current-status table that tells the service what to do
    for every event a booking can receive.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.UNPAID: {
            BookingStatus.ISSUED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.ISSUED: set(),
        BookingStatus.CANCELLED: set(),
    }

    _TRANSITION_TABLE: Dict[Tuple[BookingTrigger, BookingStatus], Transition] = {
        (BookingTrigger.PAYMENT_SETTLED, BookingStatus.UNPAID): _APPLY_ISSUE,
        (BookingTrigger.PAYMENT_SETTLED, BookingStatus.ISSUED): Transition(
            TransitionAction.REASSERT, BookingStatus.ISSUED, SeatStatus.UNAVAILABLE
        ),
        (BookingTrigger.PAYMENT_SETTLED, BookingStatus.CANCELLED): _SKIP,
        (BookingTrigger.PAYMENT_PENDING, BookingStatus.UNPAID): Transition(
            TransitionAction.APPLY
        ),
        (BookingTrigger.PAYMENT_PENDING, BookingStatus.ISSUED): _SKIP,
        (BookingTrigger.PAYMENT_PENDING, BookingStatus.CANCELLED): _SKIP,
        (BookingTrigger.PAYMENT_FAILED, BookingStatus.UNPAID): _APPLY_CANCEL,
        (BookingTrigger.PAYMENT_FAILED, BookingStatus.ISSUED): _SKIP,
        (BookingTrigger.PAYMENT_FAILED, BookingStatus.CANCELLED): _SKIP,
        (BookingTrigger.USER_CANCEL, BookingStatus.UNPAID): _APPLY_CANCEL,
        (BookingTrigger.USER_CANCEL, BookingStatus.ISSUED): _REJECT,
        (BookingTrigger.USER_CANCEL, BookingStatus.CANCELLED): _REJECT,
        (BookingTrigger.EXPIRY_SWEEP, BookingStatus.UNPAID): _APPLY_CANCEL,
        (BookingTrigger.EXPIRY_SWEEP, BookingStatus.ISSUED): _SKIP,
        (BookingTrigger.EXPIRY_SWEEP, BookingStatus.CANCELLED): _SKIP,
    }

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateError(
                f"Illegal state transition attempted: "
                f"{from_status.value} -> {to_status.value}",
                current_status=from_status.value,
            )

    @classmethod
    def resolve(
        cls,
        trigger: BookingTrigger,
        current: BookingStatus,
    ) -> Transition:
        """
        Looks up what a trigger does to a booking in the given status.
        Raises InvalidStateError for rejected triggers.
        """
        cls._ensure_valid_status(current)
        if not isinstance(trigger, BookingTrigger):
            raise TypeError(f"Expected BookingTrigger, got {type(trigger)}")

        transition = cls._TRANSITION_TABLE[(trigger, current)]
        if transition.action is TransitionAction.REJECT:
            raise InvalidStateError(
                f"Booking is already {current.value}",
                current_status=current.value,
            )
        if transition.action is TransitionAction.APPLY and transition.to_status:
            cls.validate_transition(current, transition.to_status)
        return transition

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )
