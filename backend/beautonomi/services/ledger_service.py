# backend/beautonomi/services/ledger_service.py
"""
Ledger writer for bookings settled without an external gateway.

This is the only producer of internal payment and finance rows for a
booking. It writes into the caller's transaction; the unique payment
reference makes a second run for the same booking fail instead of
duplicating entries.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import FinanceTransactionType, FundingSource
from ..models.booking import Booking
from ..models.payment import FinanceTransaction
from ..repositories.factory import RepositoryFactory
from ..repositories.ledger_repository import LedgerRepository
from .base import BaseService
from .pricing_policy import ZERO, PlatformSettingsSnapshot, compute_commission, round_money


@dataclass(frozen=True)
class LedgerAmounts:
    commission_base: Decimal
    commission: Decimal
    service_fee: Decimal
    tip: Decimal
    tax: Decimal
    travel_fee: Decimal

    @property
    def provider_earnings(self) -> Decimal:
        return self.commission_base - self.commission + self.travel_fee + self.tip


REFERENCE_PREFIXES = {
    FundingSource.WALLET: "wallet",
    FundingSource.GIFT_CARD: "giftcard",
    FundingSource.FREE: "free",
}


def settlement_source(gift_card_amount: Decimal, wallet_amount: Decimal) -> FundingSource:
    """Instrument a no-gateway settlement is booked under; FREE when nothing was collected."""
    if wallet_amount > ZERO:
        return FundingSource.WALLET
    if gift_card_amount > ZERO:
        return FundingSource.GIFT_CARD
    return FundingSource.FREE


def build_finance_rows(
    *,
    booking_id: str,
    booking_number: str,
    provider_id: str,
    currency: str,
    amounts: LedgerAmounts,
) -> List[Dict[str, Any]]:
    """Finance rows in their fixed order: payment, earnings, fee, tip, tax, travel."""

    def row(kind: FinanceTransactionType, amount: Decimal, net: Decimal, description: str,
            commission: Decimal = ZERO) -> Dict[str, Any]:
        return {
            "booking_id": booking_id,
            "provider_id": provider_id,
            "transaction_type": kind.value,
            "amount": round_money(amount),
            "fees": ZERO,
            "commission": round_money(commission),
            "net": round_money(net),
            "currency": currency,
            "description": f"{description} for booking {booking_number}",
        }

    rows = [
        row(
            FinanceTransactionType.PAYMENT,
            amounts.commission_base,
            amounts.commission,
            "Payment",
            commission=amounts.commission,
        ),
        row(
            FinanceTransactionType.PROVIDER_EARNINGS,
            amounts.provider_earnings,
            amounts.provider_earnings,
            "Provider earnings",
        ),
    ]
    if amounts.service_fee > ZERO:
        rows.append(
            row(FinanceTransactionType.SERVICE_FEE, amounts.service_fee, amounts.service_fee, "Service fee")
        )
    rows.append(row(FinanceTransactionType.TIP, amounts.tip, ZERO, "Tip"))
    rows.append(row(FinanceTransactionType.TAX, amounts.tax, ZERO, "Tax"))
    if amounts.travel_fee > ZERO:
        rows.append(row(FinanceTransactionType.TRAVEL_FEE, amounts.travel_fee, ZERO, "Travel fee"))
    return rows


class LedgerService(BaseService):
    def __init__(
        self,
        db: Session,
        snapshot: PlatformSettingsSnapshot,
        repository: Optional[LedgerRepository] = None,
    ):
        super().__init__(db)
        self.snapshot = snapshot
        self.repository = repository or RepositoryFactory.create_ledger_repository(db)

    def amounts_for(self, booking: Booking) -> LedgerAmounts:
        base = round_money(booking.commission_base)
        return LedgerAmounts(
            commission_base=base,
            commission=compute_commission(base, self.snapshot),
            service_fee=round_money(booking.service_fee_amount),
            tip=round_money(booking.tip_amount),
            tax=round_money(booking.tax_amount),
            travel_fee=round_money(booking.travel_fee),
        )

    @BaseService.measure_operation("record_no_gateway_settlement")
    def record_no_gateway_settlement(
        self,
        booking: Booking,
        *,
        amount_collected: Decimal,
        gift_card_amount: Decimal,
        wallet_amount: Decimal,
    ) -> List[FinanceTransaction]:
        """
        Write the payment transaction and finance rows for a zero-gateway booking.

        Must run inside the caller's transaction, exactly once per booking.
        """
        source = settlement_source(gift_card_amount, wallet_amount)
        collected = round_money(amount_collected)
        self.repository.add_payment_transaction(
            booking_id=booking.id,
            reference=f"{REFERENCE_PREFIXES[source]}_booking_{booking.id}",
            amount=collected,
            fees=ZERO,
            net_amount=collected,
            currency=booking.currency,
            status="success",
            provider=source.value,
            transaction_type="charge",
            transaction_metadata={
                "kind": f"{source.value}_booking",
                "gift_card_amount_applied": str(round_money(gift_card_amount)),
                "wallet_amount_applied": str(round_money(wallet_amount)),
            },
        )
        amounts = self.amounts_for(booking)
        entries = self.repository.add_finance_transactions(
            build_finance_rows(
                booking_id=booking.id,
                booking_number=booking.booking_number,
                provider_id=booking.provider_id,
                currency=booking.currency,
                amounts=amounts,
            )
        )
        self.log_operation(
            "record_no_gateway_settlement",
            booking_id=booking.id,
            commission=str(amounts.commission),
            provider_earnings=str(amounts.provider_earnings),
        )
        return entries
