import logging
import os

from fastapi import FastAPI

from booking_engine.api.routes.routes import router
from booking_engine.infrastructure.db.models import Base
from booking_engine.infrastructure.db.session import engine, wait_for_database

logger = logging.getLogger(__name__)

app = FastAPI(title="Event Booking Engine")
app.include_router(router)


def _log_payment_config() -> None:
    if not (os.getenv("RAZORPAY_KEY_ID") and os.getenv("RAZORPAY_KEY_SECRET")):
        logger.warning(
            "Razorpay keys not configured; card balances cannot be collected until "
            "RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are set."
        )
    logger.info("Booking currency: %s", os.getenv("BOOKING_CURRENCY", "GBP").upper())


@app.on_event("startup")
def on_startup() -> None:
    wait_for_database()
    Base.metadata.create_all(bind=engine)
    _log_payment_config()
