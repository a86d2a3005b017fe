"""Minimal Paystack API client for booking charges."""

from __future__ import annotations

from decimal import Decimal
import json
import logging
from typing import Any, Dict, Optional, cast

import httpx
from pydantic import SecretStr

from .payment_gateway import GatewayCharge, GatewayInitialization, PaymentGatewayError, to_smallest_unit

logger = logging.getLogger(__name__)


class PaystackError(PaymentGatewayError):
    """Raised when the Paystack API responds with an error."""


class PaystackClient:
    """Thin client for the Paystack REST API."""

    name = "paystack"

    def __init__(
        self,
        *,
        secret_key: str | SecretStr,
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        secret_value = secret_key.get_secret_value() if isinstance(secret_key, SecretStr) else secret_key
        if not secret_value:
            raise ValueError("Paystack secret key must be provided")

        self._secret_key = secret_value
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def initialize_transaction(
        self,
        *,
        email: str,
        amount: Decimal,
        currency: str,
        reference: str,
        callback_url: str,
        metadata: Dict[str, Any],
    ) -> GatewayInitialization:
        """Start a redirect checkout for ``amount`` (currency units)."""
        payload = self.request(
            "POST",
            "/transaction/initialize",
            json_body={
                "email": email,
                "amount": to_smallest_unit(amount),
                "currency": currency,
                "reference": reference,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )
        data = payload.get("data") or {}
        authorization_url = data.get("authorization_url")
        if not payload.get("status") or not authorization_url:
            raise PaystackError(
                payload.get("message") or "Paystack did not return an authorization URL",
                status_code=502,
                error_body=payload,
            )
        return GatewayInitialization(
            authorization_url=authorization_url,
            reference=data.get("reference") or reference,
            raw=payload,
        )

    def charge_authorization(
        self,
        *,
        authorization_code: str,
        email: str,
        amount: Decimal,
        currency: str,
        reference: str,
        metadata: Dict[str, Any],
        customer_reference: Optional[str] = None,
    ) -> GatewayCharge:
        """Charge a saved authorization; a declined card returns ``succeeded=False``."""
        payload = self.request(
            "POST",
            "/transaction/charge_authorization",
            json_body={
                "authorization_code": authorization_code,
                "email": email,
                "amount": to_smallest_unit(amount),
                "currency": currency,
                "reference": reference,
                "metadata": metadata,
            },
        )
        data = payload.get("data") or {}
        succeeded = bool(payload.get("status")) and data.get("status") == "success"
        return GatewayCharge(
            succeeded=succeeded,
            reference=data.get("reference") or reference,
            message=data.get("gateway_response") or payload.get("message"),
            raw=payload,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Perform a raw Paystack API request and return the parsed JSON payload."""

        url = f"{self._base_url}{path}"
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self._secret_key}",
            },
        ) as client:
            try:
                response = client.request(method, url, json=json_body, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                error_payload: Any | None = None
                try:
                    error_payload = exc.response.json()
                except json.JSONDecodeError:
                    error_payload = exc.response.text

                logger.error(
                    "Paystack API error %s for %s %s: %s",
                    status,
                    method,
                    path,
                    exc.response.text[:500],
                )
                message = (
                    error_payload.get("message")
                    if isinstance(error_payload, dict) and error_payload.get("message")
                    else f"Paystack API responded with status {status}"
                )
                raise PaystackError(message, status_code=status, error_body=error_payload) from exc
            except httpx.RequestError as exc:
                logger.error("Paystack request failure for %s %s: %s", method, path, str(exc))
                raise PaystackError("Failed to reach Paystack API") from exc

        try:
            return cast(Dict[str, Any], response.json())
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Paystack for %s %s", method, path)
            raise PaystackError("Received malformed JSON from Paystack", status_code=502) from exc
