# flight_booking/infrastructure/scheduler.py

import logging
import os
import threading
from datetime import datetime, timedelta
from typing import Callable

logger = logging.getLogger(__name__)

EXPIRY_SWEEP_MINUTE = int(os.getenv("EXPIRY_SWEEP_MINUTE", "30"))


def local_now() -> datetime:
    # Schedules follow the server's wall clock, like a crontab entry.
    return datetime.now().astimezone()


def seconds_until_next_run(now: datetime, minute: int) -> float:
    """Seconds from `now` until the next wall-clock hh:`minute`:00."""
    if not 0 <= minute <= 59:
        raise ValueError(f"minute must be between 0 and 59, got {minute}")

    target = now.replace(minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(hours=1)
    return (target - now).total_seconds()


class HourlyJobScheduler:
    """
    Runs a job once an hour at a fixed minute of the server's local
    time on a daemon thread.

    Exceptions from the job are logged; the schedule keeps going.
    """

    def __init__(
        self,
        job: Callable[[], object],
        minute: int = EXPIRY_SWEEP_MINUTE,
        name: str = "expiry-sweeper",
        clock: Callable[[], datetime] = local_now,
    ):
        if not 0 <= minute <= 59:
            raise ValueError(f"minute must be between 0 and 59, got {minute}")
        self.job = job
        self.minute = minute
        self.name = name
        self.clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Scheduler %s started. minute=%s", self.name, self.minute)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler %s stopped.", self.name)

    def run_pending(self) -> None:
        try:
            self.job()
        except Exception:
            logger.exception("Scheduled job %s failed.", self.name)

    def _loop(self) -> None:
        while True:
            delay = seconds_until_next_run(self.clock(), self.minute)
            if self._stop.wait(delay):
                return
            self.run_pending()
