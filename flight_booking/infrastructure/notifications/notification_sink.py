# flight_booking/infrastructure/notifications/notification_sink.py

import logging

from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from flight_booking.domain.notifications import NotificationMessage
from flight_booking.infrastructure.db.models import Notification
from flight_booking.infrastructure.db.session import get_db_session

logger = logging.getLogger(__name__)


class NotificationSink:
    """
    Fire-and-forget delivery of user notifications.

    Each message is written in its own short transaction, after the
    booking transaction that produced it has committed. Failures are
    logged and never reach the caller.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def send(self, message: NotificationMessage) -> bool:
        try:
            with get_db_session(self.session_factory) as db:
                db.add(
                    Notification(
                        notification_type=message.notification_type,
                        notification_title=message.title,
                        notification_description=message.description,
                        user_id=message.user_id,
                        is_read=False,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to enqueue notification. user_id=%s title=%s",
                message.user_id,
                message.title,
            )
            return False

        logger.info(
            "Notification enqueued. user_id=%s title=%s",
            message.user_id,
            message.title,
        )
        return True
