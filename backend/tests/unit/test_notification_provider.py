from __future__ import annotations

import httpx
from httpx import MockTransport, Response
import pytest

from beautonomi.services.notification_provider import (
    NotificationProvider,
    NotificationProviderError,
    NotificationProviderTemporaryError,
)

WEBHOOK = "https://notify.internal/events"


def _provider(handler) -> NotificationProvider:
    return NotificationProvider(WEBHOOK, transport=MockTransport(handler))


def test_without_webhook_event_is_only_logged():
    result = NotificationProvider("").send(
        event_type="booking.created", payload={"booking_id": "bk1"}, idempotency_key="booking.created:bk1"
    )

    assert result.delivered is False
    assert result.event_type == "booking.created"


def test_posts_event_with_idempotency_header():
    captured: dict[str, str | None] = {}

    def handler(request):
        captured["Idempotency-Key"] = request.headers.get("Idempotency-Key")
        captured["body"] = request.content.decode()
        return Response(202, json={"ok": True})

    result = _provider(handler).send(
        event_type="group_booking.created",
        payload={"group_booking_id": "gb1"},
        idempotency_key="group_booking.created:gb1",
    )

    assert captured["Idempotency-Key"] == "group_booking.created:gb1"
    assert "group_booking.created" in captured["body"]
    assert result.delivered is True
    assert result.status_code == 202


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_retryable_statuses_raise_temporary_error(status_code):
    def handler(request):
        return Response(status_code)

    with pytest.raises(NotificationProviderTemporaryError):
        _provider(handler).send(event_type="booking.paid", payload={}, idempotency_key="booking.paid:bk1")


def test_client_error_is_permanent():
    def handler(request):
        return Response(422, json={"error": "unknown event"})

    with pytest.raises(NotificationProviderError):
        _provider(handler).send(event_type="booking.paid", payload={}, idempotency_key="booking.paid:bk1")


def test_unreachable_webhook_is_temporary():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NotificationProviderTemporaryError):
        _provider(handler).send(event_type="booking.paid", payload={}, idempotency_key="booking.paid:bk1")


def test_idempotency_key_is_required():
    with pytest.raises(ValueError):
        NotificationProvider("").send(event_type="booking.paid", payload={}, idempotency_key="")
