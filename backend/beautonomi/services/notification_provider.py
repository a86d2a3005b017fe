# backend/beautonomi/services/notification_provider.py
"""
Notification provider used by the outbox dispatcher.

Posts each event to the configured notification webhook (the service that
emails/SMSes customers and group participants). Without a webhook the event
is only logged, which keeps local and test environments self-contained.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


class NotificationProviderError(RuntimeError):
    """Permanent delivery failure; retrying will not help."""


class NotificationProviderTemporaryError(RuntimeError):
    """Transient delivery failure; the dispatcher retries with backoff."""


@dataclass(slots=True)
class NotificationDispatchResult:
    idempotency_key: str
    event_type: str
    delivered: bool
    status_code: Optional[int] = None


class NotificationProvider:
    """
    Usage:
        provider = NotificationProvider()
        provider.send(event_type="booking.created", payload={...}, idempotency_key="...")
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self._timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self._transport = transport

    def send(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")

        payload = payload or {}
        logger.info(
            "Dispatching notification %s key=%s payload=%s",
            event_type,
            idempotency_key,
            json.dumps(payload, sort_keys=True)[:500],
        )
        if not self._webhook_url:
            return NotificationDispatchResult(
                idempotency_key=idempotency_key, event_type=event_type, delivered=False
            )

        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = client.post(
                    self._webhook_url,
                    json={"event_type": event_type, "payload": payload},
                    headers={"Idempotency-Key": idempotency_key},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status >= 500 or status == 429:
                    raise NotificationProviderTemporaryError(
                        f"Notification webhook returned {status} for {event_type}"
                    ) from exc
                raise NotificationProviderError(
                    f"Notification webhook rejected {event_type} with {status}"
                ) from exc
            except httpx.RequestError as exc:
                raise NotificationProviderTemporaryError(
                    f"Notification webhook unreachable for {event_type}"
                ) from exc

        return NotificationDispatchResult(
            idempotency_key=idempotency_key,
            event_type=event_type,
            delivered=True,
            status_code=response.status_code,
        )
