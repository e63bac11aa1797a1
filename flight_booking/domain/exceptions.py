

class BookingEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the flight booking engine.

    Every subclass carries the HTTP-style status code the API
    boundary converts it to.
    """

    status_code: int = 400


class UnauthenticatedError(BookingEngineError):
    """Raised when a request carries no caller identity."""

    status_code = 403


class NotFoundError(BookingEngineError):
    """Raised when a booking or seat reference does not exist."""

    status_code = 404


class ForbiddenError(BookingEngineError):
    """Raised when the caller does not own the booking."""

    status_code = 403


class InvalidStateError(BookingEngineError):
    """
    Raised when a transition precondition is violated,
    e.g. cancelling a booking that is no longer unpaid.
    """

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class SeatUnavailableError(InvalidStateError):
    """Raised when a requested seat is already held by another booking."""

    def __init__(self, seat_ids: list[str]):
        self.seat_ids = seat_ids
        seats = ", ".join(seat_ids)
        super().__init__(f"Seat(s) not available: {seats}")


class InvalidTransactionStatusError(BookingEngineError):
    """Raised when a webhook reports a transaction status we do not handle."""

    def __init__(self, transaction_status: str | None):
        self.transaction_status = transaction_status
        super().__init__(
            f"Unrecognized transaction status: {transaction_status!r}"
        )


class UpstreamError(BookingEngineError):
    """Raised when the payment provider call fails."""


class BookingValidationError(BookingEngineError):
    """Raised when a booking creation payload is malformed."""
