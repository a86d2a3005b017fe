from __future__ import annotations

from decimal import Decimal
import json

import httpx
from httpx import MockTransport, Response
import pytest

from beautonomi.integrations.paystack_client import PaystackClient, PaystackError


def _client(handler) -> PaystackClient:
    return PaystackClient(
        secret_key="sk_test",
        base_url="https://api.paystack.co",
        transport=MockTransport(handler),
    )


def _initialize(client: PaystackClient, amount: str = "550.00"):
    return client.initialize_transaction(
        email="thandi@example.com",
        amount=Decimal(amount),
        currency="ZAR",
        reference="booking_bk1_1700000000000",
        callback_url="http://localhost:3000/checkout/success",
        metadata={"booking_id": "bk1"},
    )


def test_initialize_sends_bearer_key_and_amount_in_smallest_unit():
    captured: dict[str, object] = {}

    def handler(request):
        captured["authorization"] = request.headers.get("Authorization")
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return Response(
            200,
            json={
                "status": True,
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "reference": "booking_bk1_1700000000000",
                },
            },
        )

    result = _initialize(_client(handler))

    assert captured["authorization"] == "Bearer sk_test"
    assert captured["path"] == "/transaction/initialize"
    body = captured["body"]
    assert body["amount"] == 55000
    assert body["currency"] == "ZAR"
    assert body["metadata"] == {"booking_id": "bk1"}
    assert result.authorization_url == "https://checkout.paystack.com/abc"
    assert result.reference == "booking_bk1_1700000000000"


def test_initialize_without_authorization_url_is_a_gateway_error():
    def handler(request):
        return Response(200, json={"status": False, "message": "Invalid key"})

    with pytest.raises(PaystackError) as exc_info:
        _initialize(_client(handler))

    assert exc_info.value.status_code == 502
    assert exc_info.value.retryable


def test_client_error_is_not_retryable():
    def handler(request):
        return Response(400, json={"status": False, "message": "Invalid Email Address Passed"})

    with pytest.raises(PaystackError) as exc_info:
        _initialize(_client(handler))

    assert str(exc_info.value) == "Invalid Email Address Passed"
    assert exc_info.value.status_code == 400
    assert exc_info.value.error_body == {"status": False, "message": "Invalid Email Address Passed"}
    assert not exc_info.value.retryable


def test_server_error_is_retryable():
    def handler(request):
        return Response(503, text="upstream unavailable")

    with pytest.raises(PaystackError) as exc_info:
        _initialize(_client(handler))

    assert exc_info.value.status_code == 503
    assert exc_info.value.retryable


def test_transport_failure_is_retryable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaystackError) as exc_info:
        _initialize(_client(handler))

    assert exc_info.value.status_code is None
    assert exc_info.value.retryable


def test_charge_authorization_success():
    captured: dict[str, object] = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return Response(
            200,
            json={"status": True, "data": {"status": "success", "reference": "ref-1", "gateway_response": "Approved"}},
        )

    result = _client(handler).charge_authorization(
        authorization_code="AUTH_abc123",
        email="thandi@example.com",
        amount=Decimal("800"),
        currency="ZAR",
        reference="ref-1",
        metadata={},
    )

    assert captured["path"] == "/transaction/charge_authorization"
    assert captured["body"]["authorization_code"] == "AUTH_abc123"
    assert captured["body"]["amount"] == 80000
    assert result.succeeded
    assert result.reference == "ref-1"


def test_declined_charge_is_reported_not_raised():
    def handler(request):
        return Response(
            200,
            json={
                "status": True,
                "data": {"status": "failed", "reference": "ref-2", "gateway_response": "Insufficient Funds"},
            },
        )

    result = _client(handler).charge_authorization(
        authorization_code="AUTH_abc123",
        email="thandi@example.com",
        amount=Decimal("800"),
        currency="ZAR",
        reference="ref-2",
        metadata={},
    )

    assert not result.succeeded
    assert result.message == "Insufficient Funds"


def test_missing_secret_key_is_rejected():
    with pytest.raises(ValueError):
        PaystackClient(secret_key="")
