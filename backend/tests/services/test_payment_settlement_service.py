# backend/tests/services/test_payment_settlement_service.py
"""
Tests for the settlement saga.

Bookings are created for real against SQLite; the card gateway is the
in-memory FakeGateway from conftest. With the seeded catalog and the 5%
service fee snapshot every default booking totals 1050.00 (commission
base 1000.00 + fee 50.00).
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from beautonomi.core.enums import FundingSource
from beautonomi.core.exceptions import (
    BookingValidationException,
    GiftCardInvalidException,
    PaymentFailedException,
    PaymentRecordException,
    WalletException,
)
from beautonomi.integrations.payment_gateway import PaymentGatewayError
from beautonomi.models import (
    EventOutbox,
    FinanceTransaction,
    GiftCardRedemption,
    Payment,
    PaymentTransaction,
    Promotion,
    SavedPaymentMethod,
    User,
    WalletTransaction,
)
from beautonomi.schemas.booking import SettlementRetryRequest
from beautonomi.services.payment_settlement_service import PaymentSettlementService


@pytest.fixture
def make_service(db, snapshot, fixed_clock, gateway):
    def _make(gateway_override=None):
        return PaymentSettlementService(
            db,
            gateway=gateway_override or gateway,
            settings_snapshot=snapshot,
            clock=fixed_clock,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


def _settle(service, make_booking, **funding):
    booking, draft, _ = make_booking(**funding)
    return booking, service.settle(booking, draft, service.policy_for(booking))


def _finance_by_kind(db, booking_id):
    rows = db.query(FinanceTransaction).filter(FinanceTransaction.booking_id == booking_id).all()
    return {row.transaction_type: row for row in rows}


def _redemption(db):
    redemption = db.query(GiftCardRedemption).one()
    db.refresh(redemption)
    return redemption


class TestNoGatewaySettlement:
    def test_gift_card_covers_everything(self, db, service, gateway, make_booking, make_gift_card):
        card = make_gift_card(balance="1050.00")

        booking, result = _settle(service, make_booking, gift_card_code="GIFT-1050")

        assert result.path == "no_gateway"
        assert result.payment_url is None
        assert booking.payment_status == "paid"
        assert booking.payment_provider == "gift_card"
        assert booking.status == "confirmed"
        assert booking.payment_date is not None
        assert booking.gift_card_id == card.id
        assert booking.gift_card_amount == Decimal("1050.00")
        assert gateway.initialized == [] and gateway.charged == []
        assert _redemption(db).status == "captured"

    def test_gift_card_ledger_entries(self, db, service, make_booking, make_gift_card):
        make_gift_card(balance="1050.00")

        booking, _ = _settle(service, make_booking, gift_card_code="GIFT-1050")

        payment = db.query(PaymentTransaction).one()
        assert payment.reference == f"giftcard_booking_{booking.id}"
        assert payment.amount == Decimal("1050.00")
        assert payment.provider == "gift_card"
        assert payment.status == "success"

        rows = _finance_by_kind(db, booking.id)
        assert set(rows) == {"payment", "provider_earnings", "service_fee", "tip", "tax"}
        assert rows["payment"].amount == Decimal("1000.00")
        assert rows["payment"].commission == Decimal("150.00")
        assert rows["provider_earnings"].net == Decimal("850.00")
        assert rows["service_fee"].amount == Decimal("50.00")
        assert rows["tip"].amount == Decimal("0.00")

        (paid,) = db.query(EventOutbox).filter(EventOutbox.event_type == "booking.paid").all()
        assert paid.payload["payment_provider"] == "gift_card"
        assert paid.payload["amount"] == "1050.00"

    def test_wallet_covers_everything(self, db, service, gateway, make_booking, make_wallet, catalog):
        make_wallet("1100.00")

        booking, result = _settle(service, make_booking, use_wallet=True)

        assert result.path == "no_gateway"
        assert booking.payment_provider == "wallet"
        assert booking.wallet_amount == Decimal("1050.00")
        assert service.wallets.balance(catalog.customer.id) == Decimal("50.00")
        payment = db.query(PaymentTransaction).one()
        assert payment.reference == f"wallet_booking_{booking.id}"
        assert gateway.initialized == []

    def test_gift_card_then_wallet(self, db, service, make_booking, make_gift_card, make_wallet, catalog):
        make_gift_card(balance="500.00")
        make_wallet("600.00")

        booking, result = _settle(service, make_booking, gift_card_code="GIFT-1050", use_wallet=True)

        assert result.path == "no_gateway"
        assert result.funding.applied(FundingSource.GIFT_CARD) == Decimal("500.00")
        assert result.funding.applied(FundingSource.WALLET) == Decimal("550.00")
        assert booking.payment_provider == "wallet"
        assert service.wallets.balance(catalog.customer.id) == Decimal("50.00")

    def test_provider_confirmation_keeps_booking_pending(
        self, db, service, make_booking, make_gift_card, catalog
    ):
        catalog.provider.requires_booking_confirmation = True
        db.commit()
        make_gift_card()

        booking, _ = _settle(service, make_booking, gift_card_code="GIFT-1050")

        assert booking.payment_status == "paid"
        assert booking.status == "pending"

    def test_expired_card_at_capture_fails_and_compensates(
        self, db, service, make_booking, make_gift_card
    ):
        card = make_gift_card()
        booking, draft, _ = make_booking(gift_card_code="GIFT-1050")
        original_capture = service.gift_cards.capture

        def deactivate_then_capture(booking_id):
            card.is_active = False
            db.commit()
            return original_capture(booking_id)

        service.gift_cards.capture = deactivate_then_capture

        with pytest.raises(GiftCardInvalidException) as exc_info:
            service.settle(booking, draft, service.policy_for(booking))

        assert exc_info.value.details["booking_id"] == booking.id
        assert booking.payment_status == "pending"
        assert booking.gift_card_amount == Decimal("0")
        assert _redemption(db).status == "voided"
        db.refresh(card)
        assert card.balance == Decimal("1050.00")

    def test_fully_discounted_booking_is_settled_as_free(self, db, service, gateway, make_booking):
        db.add(Promotion(code="ONTHEHOUSE", discount_type="fixed", discount_value=Decimal("1000")))
        db.commit()

        booking, result = _settle(service, make_booking, promotion_code="ONTHEHOUSE")

        assert result.path == "no_gateway"
        assert booking.total_amount == Decimal("0.00")
        assert booking.payment_status == "paid"
        assert booking.payment_provider == "free"
        payment = db.query(PaymentTransaction).one()
        assert payment.reference == f"free_booking_{booking.id}"
        assert payment.provider == "free"
        assert payment.amount == Decimal("0.00")
        assert gateway.initialized == [] and gateway.charged == []
        (paid,) = db.query(EventOutbox).filter(EventOutbox.event_type == "booking.paid").all()
        assert paid.payload["payment_provider"] == "free"


class TestGatewaySettlement:
    def test_partial_gift_card_redirects_for_the_rest(self, db, service, gateway, make_booking, make_gift_card):
        make_gift_card(balance="500.00")

        booking, result = _settle(service, make_booking, gift_card_code="GIFT-1050")

        assert result.path == "redirect"
        (call,) = gateway.initialized
        assert call["amount"] == Decimal("550.00")
        assert call["email"] == "thandi@example.com"
        assert call["metadata"]["gift_card_amount_applied"] == "500.00"
        assert call["metadata"]["commission_base"] == "1000.00"
        assert call["reference"].startswith(f"booking_{booking.id}_")
        assert result.payment_url == f"https://checkout.paystack.com/{call['reference']}"
        assert booking.payment_status == "pending"
        assert booking.payment_reference == call["reference"]
        assert booking.payment_provider == "paystack"
        # Captured only once the gateway confirms
        assert _redemption(db).status == "reserved"

        payment = db.query(Payment).one()
        assert payment.amount == Decimal("550.00")
        assert payment.status == "pending"
        assert payment.payment_metadata["gift_card_amount_applied"] == "500.00"
        (initiated,) = (
            db.query(EventOutbox).filter(EventOutbox.event_type == "booking.payment_initiated").all()
        )
        assert initiated.payload["saved_card"] is False

    def test_deposit_is_collected_when_provider_requires_one(
        self, db, service, gateway, make_booking, catalog
    ):
        catalog.provider.requires_deposit = True
        catalog.provider.deposit_percentage = Decimal("30")
        db.commit()

        booking, result = _settle(service, make_booking)

        assert result.amount_to_collect == Decimal("315.00")
        assert gateway.initialized[0]["amount"] == Decimal("315.00")
        assert booking.payment_option == "deposit"
        assert booking.amount_to_collect == Decimal("315.00")

    def test_full_payment_option_skips_the_deposit(self, db, service, gateway, make_booking, catalog):
        catalog.provider.requires_deposit = True
        catalog.provider.deposit_percentage = Decimal("30")
        db.commit()

        booking, _ = _settle(service, make_booking, payment_option="full")

        assert gateway.initialized[0]["amount"] == Decimal("1050.00")
        assert booking.payment_option == "full"

    def test_wallet_then_saved_card(
        self, db, service, gateway, make_booking, make_wallet, saved_card, catalog
    ):
        make_wallet("200.00")

        booking, result = _settle(
            service, make_booking, use_wallet=True, payment_method_id=saved_card.id
        )

        assert result.path == "saved_card"
        (charge,) = gateway.charged
        assert charge["amount"] == Decimal("850.00")
        assert charge["authorization_code"] == "AUTH_abc123"
        assert charge["customer_reference"] == "CUS_xyz"
        assert charge["metadata"]["payment_method_id"] == saved_card.id
        assert gateway.initialized == []
        assert result.payment_url is None
        assert booking.wallet_amount == Decimal("200.00")
        assert service.wallets.balance(catalog.customer.id) == Decimal("0.00")
        payment = db.query(Payment).one()
        assert payment.payment_method_id == saved_card.id
        assert payment.amount == Decimal("850.00")

    def test_saved_card_success_captures_gift_card(
        self, db, service, make_booking, make_gift_card, saved_card
    ):
        make_gift_card(balance="500.00")

        _settle(service, make_booking, gift_card_code="GIFT-1050", payment_method_id=saved_card.id)

        assert _redemption(db).status == "captured"

    def test_gift_card_voided_during_saved_card_charge_keeps_the_charge(
        self, db, make_service, make_gateway, make_booking, make_gift_card, saved_card
    ):
        card = make_gift_card(balance="500.00")

        class CardVoidingGateway(make_gateway):
            def charge_authorization(self, **kwargs):
                card.is_active = False
                db.commit()
                return super().charge_authorization(**kwargs)

        gateway = CardVoidingGateway()
        service = make_service(gateway)

        booking, result = _settle(
            service, make_booking, gift_card_code="GIFT-1050", payment_method_id=saved_card.id
        )

        (charge,) = gateway.charged
        assert charge["amount"] == Decimal("550.00")
        assert result.path == "saved_card"
        assert result.funding.applied(FundingSource.GATEWAY) == Decimal("550.00")
        assert result.funding.remaining == Decimal("500.00")
        assert booking.payment_reference == charge["reference"]
        assert booking.payment_status == "pending"
        assert booking.gift_card_id is None
        assert booking.gift_card_amount == Decimal("0")
        payment = db.query(Payment).one()
        assert payment.provider_reference == charge["reference"]
        assert payment.amount == Decimal("550.00")
        assert _redemption(db).status == "voided"
        db.refresh(card)
        assert card.balance == Decimal("500.00")
        (shortfall,) = db.query(EventOutbox).filter(
            EventOutbox.event_type == "booking.gift_card_shortfall"
        ).all()
        assert shortfall.payload["shortfall"] == "500.00"
        assert shortfall.payload["payment_reference"] == charge["reference"]

    def test_unrecorded_charge_is_not_compensated(
        self, db, service, gateway, make_booking, make_gift_card, make_wallet, saved_card, catalog
    ):
        make_gift_card(balance="500.00")
        make_wallet("200.00")
        booking, draft, _ = make_booking(
            gift_card_code="GIFT-1050", use_wallet=True, payment_method_id=saved_card.id
        )

        with patch.object(service, "_record_gateway_payment", side_effect=RuntimeError("disk full")):
            with pytest.raises(PaymentRecordException) as exc_info:
                service.settle(booking, draft, service.policy_for(booking))

        (charge,) = gateway.charged
        assert exc_info.value.http_status == 500
        assert exc_info.value.code == "PAYMENT_NOT_RECORDED"
        assert exc_info.value.details["payment_reference"] == charge["reference"]
        assert booking.gift_card_amount == Decimal("500.00")
        assert booking.wallet_amount == Decimal("200.00")
        assert _redemption(db).status == "reserved"
        assert service.wallets.balance(catalog.customer.id) == Decimal("0.00")
        assert [row.transaction_type for row in db.query(WalletTransaction).all()] == ["debit"]

    def test_cash_booking_leaves_the_rest_for_the_salon(self, db, service, gateway, make_booking):
        booking, result = _settle(service, make_booking, payment_method="cash")

        assert result.path == "cash"
        assert result.funding.applied(FundingSource.CASH) == Decimal("1050.00")
        assert booking.payment_status == "pending"
        assert gateway.initialized == [] and gateway.charged == []
        assert db.query(Payment).count() == 0

    def test_cash_with_gift_card_captures_the_card(self, db, service, make_booking, make_gift_card):
        make_gift_card(balance="500.00")

        _, result = _settle(service, make_booking, gift_card_code="GIFT-1050", payment_method="cash")

        assert result.funding.applied(FundingSource.CASH) == Decimal("550.00")
        assert _redemption(db).status == "captured"


class TestFailuresAndCompensation:
    def test_email_is_required_for_card_payments(self, db, service, make_booking, make_gift_card, catalog):
        catalog.customer.email = None
        db.commit()
        card = make_gift_card(balance="500.00")

        with pytest.raises(BookingValidationException) as exc_info:
            _settle(service, make_booking, gift_card_code="GIFT-1050")

        assert exc_info.value.code == "EMAIL_REQUIRED"
        db.refresh(card)
        assert card.balance == Decimal("500.00")
        assert _redemption(db).status == "released"

    def test_unknown_saved_method(self, service, gateway, make_booking):
        with pytest.raises(BookingValidationException) as exc_info:
            _settle(service, make_booking, payment_method_id="not-a-card")

        assert exc_info.value.code == "PAYMENT_METHOD_NOT_FOUND"
        assert gateway.charged == []

    def test_saved_method_for_another_gateway_is_not_used(self, db, service, make_booking, catalog):
        stripe_card = SavedPaymentMethod(
            user_id=catalog.customer.id, provider="stripe", authorization_code="pm_card_visa"
        )
        db.add(stripe_card)
        db.commit()

        with pytest.raises(BookingValidationException) as exc_info:
            _settle(service, make_booking, payment_method_id=stripe_card.id)

        assert exc_info.value.code == "PAYMENT_METHOD_NOT_FOUND"

    def test_declined_card_refunds_the_wallet(
        self, db, make_service, make_gateway, make_booking, make_wallet, saved_card, catalog
    ):
        service = make_service(make_gateway(charge_succeeds=False))
        make_wallet("200.00")
        booking, draft, _ = make_booking(use_wallet=True, payment_method_id=saved_card.id)

        with pytest.raises(PaymentFailedException) as exc_info:
            service.settle(booking, draft, service.policy_for(booking))

        assert exc_info.value.retryable
        assert exc_info.value.message == "Declined"
        assert exc_info.value.details["booking_id"] == booking.id
        assert service.wallets.balance(catalog.customer.id) == Decimal("200.00")
        assert booking.wallet_amount == Decimal("0")
        assert booking.payment_status == "pending"
        kinds = sorted(row.transaction_type for row in db.query(WalletTransaction).all())
        assert kinds == ["debit", "refund"]

    @pytest.mark.parametrize(
        "status_code,retryable",
        [(None, True), (503, True), (400, False)],
    )
    def test_gateway_errors_release_the_gift_card(
        self, db, make_service, make_gateway, make_booking, make_gift_card, status_code, retryable
    ):
        error = PaymentGatewayError("gateway said no", status_code)
        service = make_service(make_gateway(error=error))
        card = make_gift_card(balance="500.00")
        booking, draft, _ = make_booking(gift_card_code="GIFT-1050")

        with pytest.raises(PaymentFailedException) as exc_info:
            service.settle(booking, draft, service.policy_for(booking))

        assert exc_info.value.retryable is retryable
        assert exc_info.value.__cause__ is error
        db.refresh(card)
        assert card.balance == Decimal("500.00")
        assert booking.gift_card_id is None
        assert booking.payment_reference is None
        assert db.query(Payment).count() == 0

    def test_wallet_short_of_funds_keeps_going_with_what_is_there(
        self, service, gateway, make_booking, make_wallet, catalog
    ):
        make_wallet("50.00")

        _, result = _settle(service, make_booking, use_wallet=True)

        assert result.funding.applied(FundingSource.WALLET) == Decimal("50.00")
        assert gateway.initialized[0]["amount"] == Decimal("1000.00")

    def test_wallet_debit_race_surfaces_wallet_error(
        self, db, service, make_booking, make_wallet, catalog
    ):
        make_wallet("200.00")
        booking, draft, _ = make_booking(use_wallet=True)
        service.wallets.balance = lambda user_id: Decimal("500.00")

        with pytest.raises(WalletException) as exc_info:
            service.settle(booking, draft, service.policy_for(booking))

        assert exc_info.value.code == "WALLET_INSUFFICIENT_FUNDS"
        assert exc_info.value.details["booking_id"] == booking.id


class TestRetrySettlement:
    def test_unknown_booking(self, service, catalog):
        with pytest.raises(BookingValidationException) as exc_info:
            service.retry_settlement("missing", catalog.customer.id, SettlementRetryRequest())

        assert exc_info.value.code == "BOOKING_NOT_FOUND"

    def test_retry_after_failed_gateway_call(
        self, db, make_service, make_gateway, make_booking, make_gift_card, catalog
    ):
        failing = make_service(make_gateway(error=PaymentGatewayError("timeout")))
        booking, draft, _ = make_booking()
        with pytest.raises(PaymentFailedException):
            failing.settle(booking, draft, failing.policy_for(booking))
        make_gift_card(balance="1050.00")

        result = make_service().retry_settlement(
            booking.id, catalog.customer.id, SettlementRetryRequest(gift_card_code="gift-1050")
        )

        assert result.path == "no_gateway"
        assert result.booking.payment_status == "paid"
        assert result.booking.total_amount == Decimal("1050.00")

    def test_booking_with_gateway_reference_is_not_retryable(
        self, service, make_booking, catalog
    ):
        booking, _ = _settle(service, make_booking)

        with pytest.raises(BookingValidationException) as exc_info:
            service.retry_settlement(booking.id, catalog.customer.id, SettlementRetryRequest())

        assert exc_info.value.code == "SETTLEMENT_NOT_RETRYABLE"

    def test_other_customers_cannot_retry(self, db, service, make_booking):
        stranger = User(email="someone@example.com")
        db.add(stranger)
        db.commit()
        booking, _, _ = make_booking()

        with pytest.raises(BookingValidationException) as exc_info:
            service.retry_settlement(booking.id, stranger.id, SettlementRetryRequest())

        assert exc_info.value.code == "BOOKING_NOT_FOUND"
