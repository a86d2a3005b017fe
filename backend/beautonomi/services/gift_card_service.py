# backend/beautonomi/services/gift_card_service.py
"""
Gift card reserve/capture/release saga.

A reservation deducts the balance immediately and is later either captured
(final) or released (balance restored). Each transition commits on its own
so a slow gateway call never holds the card row.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import GiftCardRedemptionStatus
from ..core.exceptions import GiftCardInvalidException
from ..core.time_utils import utc_now
from ..models.gift_card import GiftCardRedemption
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.gift_card_repository import GiftCardRepository
from .base import BaseService
from .pricing_policy import ZERO, round_money


class GiftCardService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional[GiftCardRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_gift_card_repository(db)
        self._clock = clock

    @BaseService.measure_operation("reserve_gift_card")
    def reserve(
        self, code: str, amount_due: Decimal, booking_id: str, currency: str
    ) -> GiftCardRedemption:
        """
        Reserve up to ``amount_due`` against the card.

        Raises:
            GiftCardInvalidException: unknown, inactive, expired, wrong currency or empty card
        """
        normalized = (code or "").strip().upper()
        now = self._clock()
        with self.transaction():
            balance = self.repository.get_usable_balance(normalized, currency, now)
            amount = min(round_money(balance), round_money(amount_due)) if balance is not None else ZERO
            if amount <= ZERO:
                raise GiftCardInvalidException(details={"booking_id": booking_id})
            redemption = self.repository.reserve(
                code=normalized,
                amount=amount,
                booking_id=booking_id,
                currency=currency,
                now=now,
            )
            if redemption is None:
                # Balance moved between the read and the conditional update
                raise GiftCardInvalidException(details={"booking_id": booking_id})

        prometheus_metrics.record_gift_card_transition("reserved")
        self.log_operation("reserve_gift_card", booking_id=booking_id, amount=str(amount))
        return redemption

    @BaseService.measure_operation("capture_gift_card")
    def capture(self, booking_id: str) -> bool:
        """
        Finalize the booking's reservation.

        Idempotent: an already captured redemption returns True. If the card
        expired or was deactivated since reservation, the hold is voided and
        False is returned.
        """
        now = self._clock()
        with self.transaction():
            redemption = self.repository.get_open_redemption(booking_id)
            if redemption is None:
                return False
            if redemption.status == GiftCardRedemptionStatus.CAPTURED.value:
                return True
            if not self.repository.is_card_usable(redemption.gift_card_id, now):
                self.repository.release(redemption, now, status=GiftCardRedemptionStatus.VOIDED.value)
                voided = True
            else:
                voided = False
                self.repository.mark_captured(redemption.id, now)

        if voided:
            self.logger.warning("Voided gift card reservation for booking %s; card no longer usable", booking_id)
            prometheus_metrics.record_gift_card_transition("voided")
            return False
        prometheus_metrics.record_gift_card_transition("captured")
        return True

    def release(self, booking_id: str) -> bool:
        """Release an uncaptured reservation and restore the balance."""
        now = self._clock()
        with self.transaction():
            redemption = self.repository.get_open_redemption(booking_id)
            if redemption is None or redemption.status != GiftCardRedemptionStatus.RESERVED.value:
                return False
            released = self.repository.release(
                redemption, now, status=GiftCardRedemptionStatus.RELEASED.value
            )
        if released:
            prometheus_metrics.record_gift_card_transition("released")
        return released

    @BaseService.measure_operation("release_stale_gift_card_reservations")
    def release_stale_reservations(self, ttl_minutes: Optional[int] = None, limit: int = 200) -> int:
        """Release reservations older than the TTL whose booking never got paid."""
        ttl = ttl_minutes if ttl_minutes is not None else settings.gift_card_reservation_ttl_minutes
        now = self._clock()
        cutoff = now - timedelta(minutes=ttl)
        released = 0
        with self.transaction():
            for redemption in self.repository.find_stale_reservations(cutoff, limit=limit):
                if self.repository.release(
                    redemption, now, status=GiftCardRedemptionStatus.RELEASED.value
                ):
                    released += 1
        if released:
            prometheus_metrics.record_gift_card_transition("released", count=released)
            self.logger.info("Released %s stale gift card reservations", released)
        return released
