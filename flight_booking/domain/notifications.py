# flight_booking/domain/notifications.py

import os
from dataclasses import dataclass

from flight_booking.domain.state_machine import TransactionStatus

SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@flight-booking.local")

NOTIFICATION_TYPE = "Notification"


@dataclass(frozen=True)
class NotificationMessage:
    user_id: str
    title: str
    description: str
    notification_type: str = NOTIFICATION_TYPE


def _footer() -> str:
    return (
        "Please check your ticket details on the order history page "
        f"or contact us at {SUPPORT_EMAIL}."
    )


def awaiting_payment(booking_code: str, user_id: str) -> NotificationMessage:
    return NotificationMessage(
        user_id=user_id,
        title=f"Order Status {booking_code}",
        description=(
            f"Your order with booking code {booking_code} is waiting for payment. "
            "Please complete the payment to confirm your order."
        ),
    )


def paid(booking_code: str, user_id: str) -> NotificationMessage:
    return NotificationMessage(
        user_id=user_id,
        title=f"Order Status {booking_code}",
        description=(
            f"Your order with booking code {booking_code} has been paid successfully. "
            + _footer()
        ),
    )


_FAILURE_PHRASES = {
    TransactionStatus.DENY: "has been rejected",
    TransactionStatus.EXPIRE: "has expired",
    TransactionStatus.CANCEL: "has been cancelled",
    TransactionStatus.FAILURE: "has failed",
}


def payment_failed(
    booking_code: str,
    user_id: str,
    transaction_status: TransactionStatus,
) -> NotificationMessage:
    phrase = _FAILURE_PHRASES[transaction_status]
    return NotificationMessage(
        user_id=user_id,
        title=f"Order Status {booking_code}",
        description=(
            f"Your order with booking code {booking_code} {phrase}. " + _footer()
        ),
    )


def cancelled_by_user(booking_code: str, user_id: str) -> NotificationMessage:
    return NotificationMessage(
        user_id=user_id,
        title=f"Order Status {booking_code} is Cancelled",
        description=(
            f"Your order with booking code {booking_code} has been cancelled. "
            + _footer()
        ),
    )


def expired(booking_code: str, user_id: str) -> NotificationMessage:
    return NotificationMessage(
        user_id=user_id,
        title=f"Order Status {booking_code} is Expired",
        description=(
            f"Your order with booking code {booking_code} has expired "
            "because payment was not received in time. " + _footer()
        ),
    )
