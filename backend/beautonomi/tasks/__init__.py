"""Celery tasks for outbox delivery and payment saga recovery."""
