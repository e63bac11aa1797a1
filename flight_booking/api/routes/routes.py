import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from flight_booking.application.booking_service import (
    BookingSeat,
    BookingService,
    TransitionResult,
)
from flight_booking.api.schemas.schemas import (
    ApiResponse,
    BookingDetailResponse,
    BookingRequest,
    BookingResponse,
    PaymentNotificationRequest,
)
from flight_booking.domain.exceptions import (
    BookingEngineError,
    NotFoundError,
    UnauthenticatedError,
)
from flight_booking.domain.state_machine import (
    BookingTrigger,
    TransitionAction,
)
from flight_booking.infrastructure.db.models import Booking


router = APIRouter()
logger = logging.getLogger(__name__)


def get_booking_service() -> BookingService:
    return BookingService()


def get_current_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    # Authentication happens upstream; it forwards the caller id in this header.
    if not x_user_id:
        raise HTTPException(
            status_code=UnauthenticatedError.status_code,
            detail="Please log in to your account",
        )
    return x_user_id


def _to_http(
    exc: BookingEngineError,
    not_found_status: int | None = None,
) -> HTTPException:
    status_code = exc.status_code
    if not_found_status is not None and isinstance(exc, NotFoundError):
        status_code = not_found_status
    return HTTPException(status_code=status_code, detail=str(exc))


def _db_error_to_http(exc: SQLAlchemyError) -> HTTPException:
    if isinstance(exc, IntegrityError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conflicting booking update, please retry.",
        )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Booking store is unavailable, please retry.",
    )


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_code=booking.booking_code,
        booking_status=booking.booking_status.value,
        booking_expired=booking.booking_expired,
        total_amount=booking.total_amount,
        payment_id=booking.payment_id,
        flight_id=booking.flight_id,
        return_flight_id=booking.return_flight_id,
        discount_id=booking.discount_id,
        details=[
            BookingDetailResponse(
                seat_id=detail.seat_id,
                price=detail.price,
                passenger_name=detail.passenger_name,
            )
            for detail in booking.details
        ],
    )


def _webhook_message(result: TransitionResult, transaction_status: str) -> str:
    code = result.booking_code
    if result.duplicate:
        return f"Duplicate {transaction_status} notification for {code} ignored"
    if result.action is TransitionAction.SKIP:
        return f"Booking for {code} is already {result.status.value}, {transaction_status} ignored"
    if result.trigger is BookingTrigger.PAYMENT_SETTLED:
        return f"Booking for {code} Status is successfully issued"
    if result.trigger is BookingTrigger.PAYMENT_PENDING:
        return f"Booking for {code} Status is pending"
    return f"Booking for {code} Status is successfully canceled"


@router.get("/health")
def health():
    return {"message": "Flight booking engine is running"}


@router.post(
    "/bookings",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    request: BookingRequest,
    user_id: str = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.create_booking(
            user_id=user_id,
            flight_id=request.flight_id,
            seats=[
                BookingSeat(seat.seat_id, seat.passenger_name)
                for seat in request.seats
            ],
            ordered_by_first_name=request.ordered_by_first_name,
            ordered_by_last_name=request.ordered_by_last_name,
            ordered_by_phone_number=request.ordered_by_phone_number,
            ordered_by_email=request.ordered_by_email,
            return_flight_id=request.return_flight_id,
            discount_id=request.discount_id,
        )
    except BookingEngineError as exc:
        # unknown seats and flights are business errors on this route
        raise _to_http(exc, not_found_status=status.HTTP_400_BAD_REQUEST) from exc
    except SQLAlchemyError as exc:
        logger.exception("Booking creation failed. user_id=%s", user_id)
        raise _db_error_to_http(exc) from exc

    return ApiResponse(
        message="Booking is created successfully",
        data=_booking_response(booking),
    )


@router.post("/bookings/update", response_model=ApiResponse)
def update_booking_status(
    request: PaymentNotificationRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        result = service.handle_payment_notification(
            transaction_status=request.transaction_status,
            order_id=request.order_id,
            transaction_id=request.transaction_id,
        )
    except BookingEngineError as exc:
        logger.warning(
            "Payment notification rejected. order_id=%s status=%s error=%s",
            request.order_id,
            request.transaction_status,
            exc,
        )
        raise _to_http(exc, not_found_status=status.HTTP_400_BAD_REQUEST) from exc
    except SQLAlchemyError as exc:
        logger.exception(
            "Payment notification failed. order_id=%s status=%s",
            request.order_id,
            request.transaction_status,
        )
        raise _db_error_to_http(exc) from exc

    return ApiResponse(
        message=_webhook_message(result, request.transaction_status),
        data={
            "booking_code": result.booking_code,
            "booking_status": result.status.value,
        },
    )


@router.get("/bookings/pay/status/{booking_code}", response_model=ApiResponse)
def get_payment_status(
    booking_code: str,
    user_id: str = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        provider_status = service.get_payment_status(booking_code)
    except BookingEngineError as exc:
        raise _to_http(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("Payment status lookup failed. booking_code=%s", booking_code)
        raise _db_error_to_http(exc) from exc

    return ApiResponse(
        message="Transaction status retrieved",
        data={"transaction_status": provider_status},
    )


@router.post("/bookings/{booking_code}/cancel", response_model=ApiResponse)
def cancel_booking(
    booking_code: str,
    user_id: str = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        result = service.cancel_booking(booking_code=booking_code, user_id=user_id)
    except BookingEngineError as exc:
        raise _to_http(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("Booking cancel failed. booking_code=%s", booking_code)
        raise _db_error_to_http(exc) from exc

    return ApiResponse(
        message="Booking is successfully cancelled",
        data={
            "booking_code": result.booking_code,
            "booking_status": result.status.value,
        },
    )
