import logging
import os
import time

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from flight_booking.api.routes.routes import router
from flight_booking.application.booking_service import BookingService
from flight_booking.application.expiry_sweeper import ExpirySweeper
from flight_booking.infrastructure.db.session import engine
from flight_booking.infrastructure.db.models import Base
from flight_booking.infrastructure.scheduler import HourlyJobScheduler

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Flight Booking Engine")

app.include_router(router)
logger = logging.getLogger(__name__)

_sweep_scheduler: HourlyJobScheduler | None = None


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def _wait_for_db() -> None:
    # Handles the common case where API starts before Postgres is ready.
    max_retries = int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))
    retry_delay_seconds = float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)


def _sweep_enabled() -> bool:
    return os.getenv("EXPIRY_SWEEP_ENABLED", "true").lower() in {"1", "true", "yes"}


@app.on_event("startup")
def on_startup() -> None:
    global _sweep_scheduler

    _wait_for_db()
    Base.metadata.create_all(bind=engine)

    if _sweep_enabled():
        sweeper = ExpirySweeper(BookingService())
        _sweep_scheduler = HourlyJobScheduler(sweeper.run_once)
        _sweep_scheduler.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    if _sweep_scheduler is not None:
        _sweep_scheduler.stop()
