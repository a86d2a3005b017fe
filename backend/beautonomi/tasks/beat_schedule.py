# backend/beautonomi/tasks/beat_schedule.py
"""Celery Beat schedule for outbox delivery and gift card saga recovery."""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    "dispatch-outbox-events": {
        "task": "outbox.dispatch_pending",
        "schedule": timedelta(minutes=1),
        "options": {"queue": "notifications", "priority": 5},
    },
    # Reservations abandoned when the gateway webhook never arrived
    "release-stale-gift-card-reservations": {
        "task": "payments.release_stale_gift_card_reservations",
        "schedule": crontab(minute="*/15"),
        "options": {"queue": "payments", "priority": 7},
    },
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """Schedule for the given environment; tests run without periodic jobs."""
    if environment == "test":
        return {}
    return dict(CELERYBEAT_SCHEDULE)
