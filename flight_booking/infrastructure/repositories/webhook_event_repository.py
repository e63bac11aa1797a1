# flight_booking/infrastructure/repositories/webhook_event_repository.py

import hashlib
import json

from sqlalchemy.orm import Session
from sqlalchemy import select

from flight_booking.infrastructure.db.models import PaymentWebhookEvent

PROVIDER = "MIDTRANS"


def hash_webhook_payload(
    order_id: str,
    transaction_status: str,
    transaction_id: str | None,
) -> str:
    payload = {
        "order_id": order_id,
        "transaction_status": transaction_status,
        "transaction_id": transaction_id,
    }
    encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class WebhookEventRepository:
    """Ledger of webhook deliveries already applied, keyed by payload hash."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_hash(self, payload_hash: str) -> PaymentWebhookEvent | None:
        stmt = select(PaymentWebhookEvent).where(
            PaymentWebhookEvent.payload_hash == payload_hash
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record(
        self,
        order_id: str,
        transaction_status: str,
        transaction_id: str | None,
        payload_hash: str,
        outcome: str,
    ) -> PaymentWebhookEvent:
        event = PaymentWebhookEvent(
            provider=PROVIDER,
            order_id=order_id,
            transaction_status=transaction_status,
            transaction_id=transaction_id,
            payload_hash=payload_hash,
            outcome=outcome,
        )
        self.db.add(event)
        self.db.flush()
        return event
