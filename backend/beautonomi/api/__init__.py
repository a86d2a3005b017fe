"""FastAPI dependency wiring."""

from .dependencies import get_booking_service, get_current_user_id, get_db

__all__ = ["get_booking_service", "get_current_user_id", "get_db"]
