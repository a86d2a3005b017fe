# backend/beautonomi/repositories/event_outbox_repository.py
"""
Repository for the domain event outbox.

Enqueue happens inside the caller's transaction; the Celery dispatcher uses
the fetch and mark helpers.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Optional, cast

from sqlalchemy import Select, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from ..core.time_utils import utc_now
from ..database.session_utils import get_dialect_name
from ..models.event_outbox import EventOutbox, EventOutboxStatus

logger = logging.getLogger(__name__)


class EventOutboxRepository:
    """Data access helpers for event outbox rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> EventOutbox:
        """
        Insert an outbox row unless one already exists for the idempotency key.

        Returns the persisted row (existing or newly created).
        """
        key = idempotency_key or f"{event_type}:{aggregate_id}"
        values = {
            "id": str(ulid.ULID()),
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "payload": payload or {},
            "idempotency_key": key,
            "status": EventOutboxStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": utc_now(),
        }

        if self._dialect == "postgresql":
            stmt = (
                pg_insert(EventOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
        else:
            stmt = insert(EventOutbox).values(**values)
            if self._dialect == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")

        result = self.db.execute(stmt)
        if getattr(result, "rowcount", 0):
            self.db.flush()
            row = self.db.get(EventOutbox, values["id"])
            if row is not None:
                return cast(EventOutbox, row)

        existing = self.db.execute(
            select(EventOutbox).where(EventOutbox.idempotency_key == key)
        ).scalar_one_or_none()
        if existing is None:
            raise RuntimeError("Outbox row not found after enqueue conflict")
        logger.debug("Outbox event %s already queued", key)
        return cast(EventOutbox, existing)

    def fetch_pending(self, limit: int = 200) -> list[EventOutbox]:
        """Return pending events eligible for delivery ordered by attempt time."""
        stmt: Select[Any] = (
            select(EventOutbox)
            .where(EventOutbox.status == EventOutboxStatus.PENDING.value)
            .where(EventOutbox.next_attempt_at <= utc_now())
            .order_by(EventOutbox.next_attempt_at.asc(), EventOutbox.id.asc())
            .limit(limit)
        )
        if self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(list[EventOutbox], self.db.execute(stmt).scalars().all())

    def get_by_id(self, event_id: str) -> Optional[EventOutbox]:
        return cast(Optional[EventOutbox], self.db.get(EventOutbox, event_id))

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        now = utc_now()
        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventOutboxStatus.SENT.value,
                attempt_count=attempt_count,
                last_error=None,
                next_attempt_at=now,
                updated_at=now,
            )
        )
        self.db.flush()

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Update row after delivery failure; non-terminal failures are rescheduled."""
        now = utc_now()
        next_attempt: datetime = now if terminal else now + timedelta(seconds=max(backoff_seconds, 1))
        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=(EventOutboxStatus.FAILED if terminal else EventOutboxStatus.PENDING).value,
                attempt_count=attempt_count,
                last_error=(error[:1000] if error else None),
                next_attempt_at=next_attempt,
                updated_at=now,
            )
        )
        self.db.flush()
