"""Stripe adapter for the payment gateway contract."""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from pydantic import SecretStr
import stripe

from .payment_gateway import GatewayCharge, GatewayInitialization, PaymentGatewayError, to_smallest_unit

logger = logging.getLogger(__name__)


def _stripe_metadata(metadata: Dict[str, Any]) -> Dict[str, str]:
    # Stripe metadata values must be strings
    return {key: "" if value is None else str(value) for key, value in metadata.items()}


class StripeGateway:
    """Checkout Session for redirects, off-session PaymentIntent for saved cards."""

    name = "stripe"

    def __init__(self, *, api_key: str | SecretStr) -> None:
        secret_value = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
        if not secret_value:
            raise ValueError("Stripe secret key must be provided")
        stripe.api_key = secret_value

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
        clean_metadata = _stripe_metadata(metadata)
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                customer_email=email,
                client_reference_id=reference,
                success_url=f"{callback_url}?reference={reference}",
                cancel_url=f"{callback_url}?reference={reference}&cancelled=1",
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": currency.lower(),
                            "unit_amount": to_smallest_unit(amount),
                            "product_data": {"name": f"Booking payment {reference}"},
                        },
                    }
                ],
                metadata=clean_metadata,
                payment_intent_data={"metadata": clean_metadata},
                idempotency_key=reference,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session failed for %s: %s", reference, exc)
            raise PaymentGatewayError(
                str(exc.user_message or exc),
                status_code=getattr(exc, "http_status", None),
                error_body=getattr(exc, "json_body", None),
            ) from exc

        return GatewayInitialization(
            authorization_url=session.url,
            reference=reference,
            raw={"id": session.id},
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
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_smallest_unit(amount),
                currency=currency.lower(),
                customer=customer_reference,
                payment_method=authorization_code,
                confirm=True,
                off_session=True,
                receipt_email=email,
                metadata={**_stripe_metadata(metadata), "reference": reference},
                idempotency_key=reference,
            )
        except stripe.CardError as exc:
            logger.info("Stripe declined saved card for %s: %s", reference, exc.user_message)
            return GatewayCharge(succeeded=False, reference=reference, message=exc.user_message)
        except stripe.StripeError as exc:
            logger.error("Stripe off-session charge failed for %s: %s", reference, exc)
            raise PaymentGatewayError(
                str(exc.user_message or exc),
                status_code=getattr(exc, "http_status", None),
                error_body=getattr(exc, "json_body", None),
            ) from exc

        status = getattr(intent, "status", "")
        return GatewayCharge(
            succeeded=status in ("succeeded", "processing"),
            reference=getattr(intent, "id", None) or reference,
            message=status,
            raw={"id": getattr(intent, "id", None), "status": status},
        )
