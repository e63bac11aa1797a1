from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class BookingSeatRequest(BaseModel):
    seat_id: str
    passenger_name: str | None = None


class BookingRequest(BaseModel):
    flight_id: str
    return_flight_id: str | None = None
    discount_id: str | None = None
    seats: list[BookingSeatRequest] = Field(min_length=1)
    ordered_by_first_name: str = Field(min_length=1)
    ordered_by_last_name: str | None = None
    ordered_by_phone_number: str | None = None
    ordered_by_email: EmailStr


class BookingDetailResponse(BaseModel):
    seat_id: str
    price: int
    passenger_name: str | None = None


class BookingResponse(BaseModel):
    booking_code: str
    booking_status: str
    booking_expired: datetime
    total_amount: int
    payment_id: str | None = None
    flight_id: str
    return_flight_id: str | None = None
    discount_id: str | None = None
    details: list[BookingDetailResponse]


class PaymentNotificationRequest(BaseModel):
    """Webhook body posted by the payment provider; extra fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    transaction_status: str
    order_id: str
    transaction_id: str | None = None


class ApiResponse(BaseModel):
    status: str = "Success"
    message: str
    data: Any | None = None
