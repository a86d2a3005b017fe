# backend/beautonomi/tasks/celery_app.py
"""
Celery application configuration.

Redis is the broker and result backend; periodic jobs come from
``beat_schedule``.
"""

from typing import Any

from celery import Celery
from celery.signals import setup_logging

from ..core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = settings.broker_url
    celery_app = Celery("beautonomi", broker=broker_url, backend=broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 300,
            "task_time_limit": 600,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "task_max_retries": 3,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {
                "visibility_timeout": 3600,
                "polling_interval": 10.0,
            },
        }
    )

    # Explicit imports so workers register tasks even if autodiscovery misses them
    celery_app.conf.imports = (
        "beautonomi.tasks.notification_tasks",
        "beautonomi.tasks.payment_tasks",
    )
    celery_app.conf.task_routes = {
        "outbox.*": {"queue": "notifications"},
        "payments.*": {"queue": "payments"},
    }

    from .beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule(settings.environment)
    return celery_app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    import logging

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


celery_app = create_celery_app()
