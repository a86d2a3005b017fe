# backend/beautonomi/services/booking_service.py
"""
Booking Service

Entry point for the booking pipeline: validate the draft, reserve the slot,
then settle payment. Validation and reservation fail fast; once the booking
exists, payment failures leave it created and unpaid so the customer can
retry settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import DomainException, InternalBookingException
from ..models.booking import Booking
from ..schemas.booking import BookingDraft, FundingSelection
from .base import BaseService
from .booking_creation_service import BookingCreationService
from .booking_validation_service import BookingValidationService, ValidatedBookingData
from .payment_settlement_service import PaymentSettlementService, SettlementPolicy, SettlementResult
from .platform_settings_service import PlatformSettingsService
from .pricing_policy import PlatformSettingsSnapshot


@dataclass(frozen=True)
class BookingCreateResult:
    booking: Booking
    payment_url: Optional[str] = None
    settlement: Optional[SettlementResult] = None


class BookingService(BaseService):
    """Compose validation, creation and settlement for one booking attempt."""

    def __init__(
        self,
        db: Session,
        validation_service: Optional[BookingValidationService] = None,
        creation_service: Optional[BookingCreationService] = None,
        settlement_service: Optional[PaymentSettlementService] = None,
        settings_snapshot: Optional[PlatformSettingsSnapshot] = None,
    ):
        super().__init__(db)
        # One snapshot per attempt keeps pricing and ledger on the same rates
        snapshot = settings_snapshot
        if snapshot is None and (validation_service is None or settlement_service is None):
            snapshot = PlatformSettingsService(db).get_snapshot()
        self.validation_service = validation_service or BookingValidationService(
            db, settings_snapshot=snapshot
        )
        self.creation_service = creation_service or BookingCreationService(db)
        self.settlement_service = settlement_service or PaymentSettlementService(
            db, settings_snapshot=snapshot
        )

    @BaseService.measure_operation("create_booking")
    def create_booking(self, draft: BookingDraft, user_id: str) -> BookingCreateResult:
        """
        Create and settle a booking for ``user_id``.

        Raises:
            DomainException: one of the booking error kinds; anything unexpected
                is wrapped as InternalBookingException
        """
        try:
            validated = self.validation_service.validate(draft, user_id)
            outcome = self.creation_service.create(validated, actor_id=user_id)
            settlement = self.settlement_service.settle(
                outcome.booking, draft, self._policy(validated)
            )
        except DomainException:
            raise
        except Exception as exc:
            self.logger.error("Unexpected error creating booking: %s", exc, exc_info=True)
            raise InternalBookingException() from exc

        self.log_operation(
            "create_booking",
            booking_id=settlement.booking.id,
            payment_status=settlement.booking.payment_status,
            failed_steps=list(outcome.failed_steps),
        )
        return BookingCreateResult(
            booking=settlement.booking,
            payment_url=settlement.payment_url,
            settlement=settlement,
        )

    def retry_settlement(
        self, booking_id: str, user_id: str, funding: FundingSelection
    ) -> BookingCreateResult:
        try:
            settlement = self.settlement_service.retry_settlement(booking_id, user_id, funding)
        except DomainException:
            raise
        except Exception as exc:
            self.logger.error("Unexpected error retrying settlement: %s", exc, exc_info=True)
            raise InternalBookingException() from exc
        return BookingCreateResult(
            booking=settlement.booking,
            payment_url=settlement.payment_url,
            settlement=settlement,
        )

    @staticmethod
    def _policy(validated: ValidatedBookingData) -> SettlementPolicy:
        return SettlementPolicy(
            customer_email=validated.customer_email,
            requires_deposit=validated.requires_deposit,
            deposit_percentage=validated.deposit_percentage,
            requires_confirmation=validated.requires_confirmation,
        )
