import logging
from dataclasses import dataclass, field
from datetime import datetime

from flight_booking.application.booking_service import BookingService
from flight_booking.domain.state_machine import TransitionAction

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    cancelled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def candidates(self) -> int:
        return len(self.cancelled) + len(self.skipped) + len(self.failed)


class ExpirySweeper:
    """
    Cancels unpaid bookings whose payment deadline has passed.

    Candidates are processed one by one, each in its own transaction
    through the same entry point the webhook and user cancel paths use.
    A failing booking is logged and the sweep moves on.
    """

    def __init__(self, service: BookingService):
        self.service = service

    def run_once(self, now: datetime | None = None) -> SweepReport:
        now = now or self.service.clock()
        report = SweepReport()

        codes = self.service.list_expired_unpaid(now)
        if not codes:
            logger.debug("Expiry sweep found nothing to cancel.")
            return report

        logger.info("Expiry sweep started. candidates=%s", len(codes))
        for booking_code in codes:
            try:
                result = self.service.expire_booking(booking_code, now=now)
            except Exception:
                logger.exception("Expiry sweep failed for booking_code=%s", booking_code)
                report.failed.append(booking_code)
                continue

            if result.action is TransitionAction.APPLY:
                report.cancelled.append(booking_code)
            else:
                report.skipped.append(booking_code)

        logger.info(
            "Expiry sweep finished. cancelled=%s skipped=%s failed=%s",
            len(report.cancelled),
            len(report.skipped),
            len(report.failed),
        )
        return report
