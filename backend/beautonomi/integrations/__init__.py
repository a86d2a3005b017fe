"""Payment gateway clients."""

from .payment_gateway import (
    GatewayCharge,
    GatewayInitialization,
    PaymentGateway,
    PaymentGatewayError,
    get_payment_gateway,
)

__all__ = [
    "GatewayCharge",
    "GatewayInitialization",
    "PaymentGateway",
    "PaymentGatewayError",
    "get_payment_gateway",
]
