# backend/beautonomi/main.py
"""FastAPI application for the booking and settlement backend."""

import logging
from typing import Dict

from fastapi import FastAPI

from . import __version__
from .core.config import settings
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import prometheus as prometheus_v1

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Beautonomi Booking API",
        version=__version__,
        description="Booking creation and payment settlement",
    )
    app.include_router(bookings_v1.router, prefix="/api/v1/bookings")
    app.include_router(prometheus_v1.router)

    @app.get("/health", tags=["health"])
    def health() -> Dict[str, str]:
        return {"status": "healthy", "environment": settings.environment, "version": __version__}

    logger.info("Booking API initialised (environment=%s)", settings.environment)
    return app


app = create_app()
