"""Gateway-neutral contract consumed by the settlement engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Protocol

from ..core.config import settings


class PaymentGatewayError(RuntimeError):
    """Raised when a gateway rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        error_body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body

    @property
    def retryable(self) -> bool:
        # Transport failures and 5xx are worth retrying; 4xx needs support
        return self.status_code is None or self.status_code >= 500


@dataclass(frozen=True)
class GatewayInitialization:
    authorization_url: str
    reference: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayCharge:
    succeeded: bool
    reference: str
    message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    name: str

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
        ...

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
        ...


def to_smallest_unit(amount: Decimal) -> int:
    """Currency units to the gateway's minor unit (cents, kobo)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_payment_gateway() -> PaymentGateway:
    """Gateway selected by ``settings.payment_gateway``."""
    if settings.payment_gateway == "stripe":
        from .stripe_gateway import StripeGateway

        return StripeGateway(api_key=settings.stripe_secret_key)

    from .paystack_client import PaystackClient

    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.gateway_timeout_seconds,
    )
