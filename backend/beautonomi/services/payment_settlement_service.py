# backend/beautonomi/services/payment_settlement_service.py
"""
Payment Settlement Engine.

Runs the funding saga for one booking: gift card, then wallet, then either
an immediate no-gateway settlement, a cash booking, or a card charge for
whatever is still due. Every funding step commits on its own; if a later
step fails the earlier ones are compensated (gift card released, wallet
refunded) and the booking is left created but unpaid so settlement can be
retried with different funding. Once a card charge succeeds nothing is
compensated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingStatus, FundingSource, PaymentMethodChoice, PaymentOption, PaymentStatus
from ..core.exceptions import (
    BookingValidationException,
    DomainException,
    FundingException,
    GiftCardInvalidException,
    PaymentFailedException,
    PaymentRecordException,
)
from ..core.time_utils import utc_now
from ..events.booking_events import BookingPaid, GiftCardShortfall, PaymentInitiated
from ..integrations.payment_gateway import PaymentGateway, PaymentGatewayError, get_payment_gateway
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.catalog_repository import CatalogRepository
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.ledger_repository import LedgerRepository
from ..schemas.booking import FundingSelection
from .base import BaseService
from .funding import FundingState
from .gift_card_service import GiftCardService
from .ledger_service import LedgerService, settlement_source
from .platform_settings_service import PlatformSettingsService
from .pricing_policy import ZERO, PlatformSettingsSnapshot, compute_amount_to_collect, round_money, to_decimal
from .wallet_service import WalletService


@dataclass(frozen=True)
class SettlementPolicy:
    """Provider and customer facts the saga needs beyond the booking row."""

    customer_email: Optional[str]
    requires_deposit: bool
    deposit_percentage: Decimal
    requires_confirmation: bool


@dataclass(frozen=True)
class SettlementResult:
    booking: Booking
    funding: FundingState
    path: str
    payment_url: Optional[str] = None

    @property
    def amount_to_collect(self) -> Decimal:
        return self.funding.amount_to_collect


class PaymentSettlementService(BaseService):
    """Settle a created booking across gift card, wallet and the card gateway."""

    def __init__(
        self,
        db: Session,
        gateway: Optional[PaymentGateway] = None,
        gift_card_service: Optional[GiftCardService] = None,
        wallet_service: Optional[WalletService] = None,
        settings_snapshot: Optional[PlatformSettingsSnapshot] = None,
        booking_repository: Optional[BookingRepository] = None,
        catalog_repository: Optional[CatalogRepository] = None,
        ledger_repository: Optional[LedgerRepository] = None,
        outbox_repository: Optional[EventOutboxRepository] = None,
        gateway_factory: Callable[[], PaymentGateway] = get_payment_gateway,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self._gateway = gateway
        self._gateway_factory = gateway_factory
        self._snapshot = settings_snapshot
        self._clock = clock
        self.gift_cards = gift_card_service or GiftCardService(db, clock=clock)
        self.wallets = wallet_service or WalletService(db)
        self.bookings = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.catalog = catalog_repository or RepositoryFactory.create_catalog_repository(db)
        self.ledger_repository = ledger_repository or RepositoryFactory.create_ledger_repository(db)
        self.outbox = outbox_repository or RepositoryFactory.create_event_outbox_repository(db)

    @property
    def gateway(self) -> PaymentGateway:
        if self._gateway is None:
            self._gateway = self._gateway_factory()
        return self._gateway

    @property
    def snapshot(self) -> PlatformSettingsSnapshot:
        if self._snapshot is None:
            self._snapshot = PlatformSettingsService(self.db).get_snapshot()
        return self._snapshot

    # ------------------------------------------------------------------ API
    @BaseService.measure_operation("settle_booking")
    def settle(
        self, booking: Booking, funding: FundingSelection, policy: SettlementPolicy
    ) -> SettlementResult:
        """
        Run the funding saga for ``booking``.

        Raises:
            GiftCardInvalidException: the gift card could not be reserved or captured
            WalletException: the wallet debit failed
            PaymentFailedException: the gateway declined or could not be reached
            BookingValidationException: missing email or unknown saved payment method
            PaymentRecordException: a saved card was charged but the payment row failed to write
        """
        amount_to_collect = compute_amount_to_collect(
            to_decimal(booking.total_amount),
            requires_deposit=policy.requires_deposit,
            deposit_percentage=policy.deposit_percentage,
            payment_option=funding.payment_option.value,
        )
        payment_option = funding.payment_option.value if policy.requires_deposit else PaymentOption.FULL.value
        with self.transaction():
            booking.payment_option = payment_option
            booking.amount_to_collect = amount_to_collect

        state = FundingState.start(amount_to_collect)
        try:
            state = self._apply_gift_card(booking, funding, state)
            state = self._apply_wallet(booking, funding, state)

            if state.is_covered:
                result = self._settle_without_gateway(booking, state, policy)
            elif funding.payment_method != PaymentMethodChoice.CARD:
                result = self._settle_cash(booking, state)
            else:
                result = self._charge_card(booking, funding, state, policy)
        except PaymentGatewayError as exc:
            self._compensate(booking, state)
            prometheus_metrics.record_settlement(self._card_path(funding), "failed")
            raise PaymentFailedException(
                "Payment could not be processed. Please try again."
                if exc.retryable
                else "Payment was rejected. Please contact support.",
                retryable=exc.retryable,
                details={"booking_id": booking.id, "gateway_status": exc.status_code},
            ) from exc
        except PaymentRecordException:
            prometheus_metrics.record_settlement(self._card_path(funding), "failed")
            raise
        except DomainException as exc:
            self._compensate(booking, state)
            prometheus_metrics.record_settlement(self._path_for(funding, state), "failed")
            if isinstance(exc, FundingException):
                exc.attach_booking(booking.id)
            raise

        prometheus_metrics.record_settlement(result.path, "success")
        self.log_operation(
            "settle_booking",
            booking_id=booking.id,
            path=result.path,
            amount_to_collect=str(amount_to_collect),
            gift_card=str(result.funding.applied(FundingSource.GIFT_CARD)),
            wallet=str(result.funding.applied(FundingSource.WALLET)),
        )
        return result

    @BaseService.measure_operation("retry_settlement")
    def retry_settlement(
        self, booking_id: str, user_id: str, funding: FundingSelection
    ) -> SettlementResult:
        """
        Re-run the saga for an unpaid booking with fresh funding inputs.

        Totals come from the booking row and are never recomputed.
        """
        booking = self.bookings.get_for_customer(booking_id, user_id)
        if booking is None:
            raise BookingValidationException("Booking not found", code="BOOKING_NOT_FOUND")
        if (
            booking.payment_status != PaymentStatus.PENDING.value
            or booking.payment_reference
            or round_money(booking.gift_card_amount) > ZERO
            or round_money(booking.wallet_amount) > ZERO
        ):
            raise BookingValidationException(
                "Settlement cannot be retried for this booking",
                code="SETTLEMENT_NOT_RETRYABLE",
                details={"booking_id": booking.id, "payment_status": booking.payment_status},
            )
        return self.settle(booking, funding, self.policy_for(booking))

    def policy_for(self, booking: Booking) -> SettlementPolicy:
        provider = self.catalog.get_provider(booking.provider_id)
        customer = self.catalog.get_user(booking.customer_id)
        if provider is None:
            raise BookingValidationException("Provider not found or inactive", code="PROVIDER_UNAVAILABLE")
        return SettlementPolicy(
            customer_email=customer.email if customer else None,
            requires_deposit=bool(provider.requires_deposit),
            deposit_percentage=(
                to_decimal(provider.deposit_percentage)
                if provider.deposit_percentage is not None
                else to_decimal(settings.default_deposit_percentage)
            ),
            requires_confirmation=bool(provider.requires_booking_confirmation),
        )

    # -------------------------------------------------------- funding steps
    def _apply_gift_card(
        self, booking: Booking, funding: FundingSelection, state: FundingState
    ) -> FundingState:
        if not funding.gift_card_code or state.is_covered:
            return state
        redemption = self.gift_cards.reserve(
            funding.gift_card_code, state.remaining, booking.id, booking.currency
        )
        state = state.apply(FundingSource.GIFT_CARD, round_money(redemption.amount), redemption.gift_card_id)
        with self.transaction():
            booking.gift_card_id = redemption.gift_card_id
            booking.gift_card_amount = state.applied(FundingSource.GIFT_CARD)
        return state

    def _apply_wallet(
        self, booking: Booking, funding: FundingSelection, state: FundingState
    ) -> FundingState:
        if not funding.use_wallet or state.is_covered:
            return state
        amount = state.capacity(self.wallets.balance(booking.customer_id))
        if amount <= ZERO:
            return state
        entry = self.wallets.debit_self(
            booking.customer_id,
            amount,
            f"Wallet spend for booking {booking.booking_number}",
            reference_id=booking.id,
            reference_type="booking",
        )
        state = state.apply(FundingSource.WALLET, amount, entry.id)
        with self.transaction():
            booking.wallet_amount = state.applied(FundingSource.WALLET)
        return state

    def _capture_gift_card(self, booking: Booking, state: FundingState) -> None:
        if state.applied(FundingSource.GIFT_CARD) <= ZERO:
            return
        if not self.gift_cards.capture(booking.id):
            raise GiftCardInvalidException(
                "Gift card is no longer valid", details={"booking_id": booking.id}
            )

    def _capture_after_charge(
        self, booking: Booking, state: FundingState, payment_reference: str
    ) -> FundingState:
        """
        Finalize the gift card hold once the card charge has been recorded.

        A voided hold leaves the charge intact: the gift card share is dropped
        from the booking and a shortfall event is queued for follow-up.
        """
        shortfall = state.applied(FundingSource.GIFT_CARD)
        if shortfall <= ZERO:
            return state
        try:
            captured = self.gift_cards.capture(booking.id)
        except Exception as exc:
            self.logger.error(
                "Gift card capture failed after charge %s for booking %s: %s",
                payment_reference,
                booking.id,
                exc,
                exc_info=True,
            )
            return state
        if captured:
            return state

        self.logger.warning(
            "Gift card hold voided after charge %s; booking %s is short %s",
            payment_reference,
            booking.id,
            shortfall,
        )
        with self.transaction():
            booking.gift_card_id = None
            booking.gift_card_amount = ZERO
            event = GiftCardShortfall(
                booking_id=booking.id,
                payment_reference=payment_reference,
                shortfall=str(shortfall),
                currency=booking.currency,
            )
            self.outbox.enqueue(event.event_type, booking.id, event.to_dict())
        return state.without(FundingSource.GIFT_CARD)

    # ------------------------------------------------------------ outcomes
    def _settle_without_gateway(
        self, booking: Booking, state: FundingState, policy: SettlementPolicy
    ) -> SettlementResult:
        self._capture_gift_card(booking, state)
        wallet_amount = state.applied(FundingSource.WALLET)
        gift_card_amount = state.applied(FundingSource.GIFT_CARD)
        provider = settlement_source(gift_card_amount, wallet_amount)
        ledger = LedgerService(self.db, self.snapshot, repository=self.ledger_repository)

        with self.transaction():
            booking.payment_status = PaymentStatus.PAID.value
            booking.payment_provider = provider.value
            booking.payment_date = self._clock()
            booking.status = (
                BookingStatus.PENDING.value if policy.requires_confirmation else BookingStatus.CONFIRMED.value
            )
            ledger.record_no_gateway_settlement(
                booking,
                amount_collected=state.applied_total,
                gift_card_amount=gift_card_amount,
                wallet_amount=wallet_amount,
            )
            event = BookingPaid(
                booking_id=booking.id,
                payment_provider=provider.value,
                amount=str(state.applied_total),
                currency=booking.currency,
                status=booking.status,
            )
            self.outbox.enqueue(event.event_type, booking.id, event.to_dict())

        return SettlementResult(booking=booking, funding=state, path="no_gateway")

    def _settle_cash(self, booking: Booking, state: FundingState) -> SettlementResult:
        self._capture_gift_card(booking, state)
        return SettlementResult(
            booking=booking,
            funding=state.settle_remaining(FundingSource.CASH),
            path="cash",
        )

    def _charge_card(
        self,
        booking: Booking,
        funding: FundingSelection,
        state: FundingState,
        policy: SettlementPolicy,
    ) -> SettlementResult:
        if not policy.customer_email:
            raise BookingValidationException("User email is required for payment", code="EMAIL_REQUIRED")

        gateway = self.gateway
        remaining = state.remaining
        reference = f"booking_{booking.id}_{int(self._clock().timestamp() * 1000)}"
        metadata = self._gateway_metadata(booking, funding, state)

        if funding.payment_method_id:
            method = self.ledger_repository.get_saved_payment_method(
                funding.payment_method_id, booking.customer_id, gateway.name
            )
            if method is None:
                raise BookingValidationException(
                    "Saved payment method not found or invalid", code="PAYMENT_METHOD_NOT_FOUND"
                )
            charge = gateway.charge_authorization(
                authorization_code=method.authorization_code,
                email=policy.customer_email,
                amount=remaining,
                currency=booking.currency,
                reference=reference,
                metadata={**metadata, "payment_method_id": method.id},
                customer_reference=method.customer_reference,
            )
            if not charge.succeeded:
                raise PaymentFailedException(
                    charge.message or "Failed to charge saved card",
                    retryable=True,
                    details={"booking_id": booking.id},
                )
            # Money has moved; nothing past this point may compensate
            try:
                self._record_gateway_payment(
                    booking, gateway.name, charge.reference, remaining, funding, state, saved_method_id=method.id
                )
            except Exception as exc:
                self.logger.error(
                    "Charge %s succeeded but booking %s could not record it: %s",
                    charge.reference,
                    booking.id,
                    exc,
                    exc_info=True,
                )
                raise PaymentRecordException(
                    details={"booking_id": booking.id, "payment_reference": charge.reference}
                ) from exc
            state = self._capture_after_charge(booking, state, charge.reference)
            return SettlementResult(
                booking=booking,
                funding=state.apply(FundingSource.GATEWAY, remaining, charge.reference),
                path="saved_card",
            )

        init = gateway.initialize_transaction(
            email=policy.customer_email,
            amount=remaining,
            currency=booking.currency,
            reference=reference,
            callback_url=settings.checkout_callback_url,
            metadata=metadata,
        )
        self._record_gateway_payment(booking, gateway.name, init.reference, remaining, funding, state)
        return SettlementResult(
            booking=booking,
            funding=state.settle_remaining(FundingSource.GATEWAY, init.reference),
            path="redirect",
            payment_url=init.authorization_url,
        )

    def _record_gateway_payment(
        self,
        booking: Booking,
        gateway_name: str,
        reference: str,
        amount: Decimal,
        funding: FundingSelection,
        state: FundingState,
        saved_method_id: Optional[str] = None,
    ) -> None:
        with self.transaction():
            booking.payment_reference = reference
            booking.payment_provider = gateway_name
            booking.payment_status = PaymentStatus.PENDING.value
            self.ledger_repository.add_payment(
                booking_id=booking.id,
                user_id=booking.customer_id,
                provider_id=booking.provider_id,
                amount=amount,
                currency=booking.currency,
                status=PaymentStatus.PENDING.value,
                payment_provider=gateway_name,
                provider_reference=reference,
                payment_method_id=saved_method_id,
                description=f"Payment for booking {booking.booking_number}",
                payment_metadata={
                    "payment_option": booking.payment_option,
                    "gift_card_amount_applied": str(state.applied(FundingSource.GIFT_CARD)),
                    "gift_card_code": funding.gift_card_code,
                    "wallet_amount_applied": str(state.applied(FundingSource.WALLET)),
                    "saved_card_used": saved_method_id is not None,
                    "save_card": funding.save_card,
                },
            )
            event = PaymentInitiated(
                booking_id=booking.id,
                reference=reference,
                amount=str(amount),
                currency=booking.currency,
                saved_card=saved_method_id is not None,
            )
            self.outbox.enqueue(event.event_type, booking.id, event.to_dict())

    def _gateway_metadata(
        self, booking: Booking, funding: FundingSelection, state: FundingState
    ) -> Dict[str, Any]:
        """Full cost breakdown so the gateway webhook can rebuild ledger entries."""
        return {
            "booking_id": booking.id,
            "customer_id": booking.customer_id,
            "amount_to_collect": str(state.remaining),
            "gift_card_amount_applied": str(state.applied(FundingSource.GIFT_CARD)),
            "gift_card_code": funding.gift_card_code,
            "wallet_amount_applied": str(state.applied(FundingSource.WALLET)),
            "currency": booking.currency,
            "tip_amount": str(round_money(booking.tip_amount)),
            "tax_amount": str(round_money(booking.tax_amount)),
            "travel_fee": str(round_money(booking.travel_fee)),
            "service_fee_amount": str(round_money(booking.service_fee_amount)),
            "service_fee_percentage": str(to_decimal(booking.service_fee_percentage)),
            "commission_base": str(round_money(booking.commission_base)),
            "save_card": funding.save_card,
            "set_as_default": funding.set_as_default,
            "payment_option": booking.payment_option,
        }

    # --------------------------------------------------------- compensation
    def _compensate(self, booking: Booking, state: FundingState) -> None:
        """Undo uncaptured gift card holds and wallet debits; never raises."""
        gift_card_amount = state.applied(FundingSource.GIFT_CARD)
        wallet_amount = state.applied(FundingSource.WALLET)
        if gift_card_amount <= ZERO and wallet_amount <= ZERO:
            return

        if gift_card_amount > ZERO:
            try:
                self.gift_cards.release(booking.id)
            except Exception as exc:
                self.logger.error(
                    "Failed to release gift card hold for booking %s: %s", booking.id, exc, exc_info=True
                )
        if wallet_amount > ZERO:
            try:
                self.wallets.refund(
                    booking.customer_id,
                    wallet_amount,
                    f"Refund for unpaid booking {booking.booking_number}",
                    reference_id=booking.id,
                    reference_type="booking",
                )
            except Exception as exc:
                self.logger.error(
                    "Failed to refund wallet debit for booking %s: %s", booking.id, exc, exc_info=True
                )
        try:
            with self.transaction():
                booking.gift_card_id = None
                booking.gift_card_amount = ZERO
                booking.wallet_amount = ZERO
                booking.payment_status = PaymentStatus.PENDING.value
        except Exception as exc:
            self.logger.error(
                "Failed to reset funding on booking %s: %s", booking.id, exc, exc_info=True
            )

    @staticmethod
    def _card_path(funding: FundingSelection) -> str:
        return "saved_card" if funding.payment_method_id else "redirect"

    def _path_for(self, funding: FundingSelection, state: FundingState) -> str:
        if state.is_covered:
            return "no_gateway"
        if funding.payment_method != PaymentMethodChoice.CARD:
            return "cash"
        return self._card_path(funding)
