"""
Runs one expiry sweep and exits.

Meant for an external scheduler, e.g. a crontab entry:

    30 * * * * cd /srv/flight-booking && python -m scripts.run_expiry_sweep
"""

import logging
import os

from flight_booking.application.booking_service import BookingService
from flight_booking.application.expiry_sweeper import ExpirySweeper


def main() -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    report = ExpirySweeper(BookingService()).run_once()
    print(
        f"Expiry sweep complete: cancelled={len(report.cancelled)} "
        f"skipped={len(report.skipped)} failed={len(report.failed)}"
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
