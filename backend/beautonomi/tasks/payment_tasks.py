# backend/beautonomi/tasks/payment_tasks.py
"""Celery tasks for payment saga recovery."""

from __future__ import annotations

from celery.utils.log import get_task_logger

from ..database import SessionLocal
from ..services.gift_card_service import GiftCardService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(name="payments.release_stale_gift_card_reservations", max_retries=0, queue="payments")
def release_stale_gift_card_reservations(limit: int = 200) -> int:
    """
    Release gift card holds whose booking was never paid within the TTL.

    Returns the number of reservations released.
    """
    session = SessionLocal()
    try:
        released = GiftCardService(session).release_stale_reservations(limit=limit)
        if released:
            logger.info("Released %s stale gift card reservations", released)
        return released
    finally:
        session.close()
