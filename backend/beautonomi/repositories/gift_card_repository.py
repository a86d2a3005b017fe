# backend/beautonomi/repositories/gift_card_repository.py
"""
Gift card balance and redemption persistence.

Every balance movement is a single conditional UPDATE so two bookings
spending the same card concurrently cannot both succeed.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ..core.enums import GiftCardRedemptionStatus, PaymentStatus
from ..core.time_utils import as_utc
from ..models.booking import Booking
from ..models.gift_card import GiftCard, GiftCardRedemption
from .base_repository import BaseRepository

RESERVED = GiftCardRedemptionStatus.RESERVED.value
CAPTURED = GiftCardRedemptionStatus.CAPTURED.value


class GiftCardRepository(BaseRepository[GiftCard]):
    def __init__(self, db: Session):
        super().__init__(db, GiftCard)

    def reserve(
        self,
        *,
        code: str,
        amount: Decimal,
        booking_id: str,
        currency: str,
        now: datetime,
    ) -> Optional[GiftCardRedemption]:
        """Hold ``amount`` against the card; None when invalid, expired or short."""
        result = self.db.execute(
            update(GiftCard)
            .where(
                func.upper(GiftCard.code) == code,
                GiftCard.is_active.is_(True),
                GiftCard.currency == currency,
                GiftCard.balance >= amount,
                or_(GiftCard.expires_at.is_(None), GiftCard.expires_at > now),
            )
            .values(balance=GiftCard.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        card_id = self.db.execute(
            select(GiftCard.id).where(func.upper(GiftCard.code) == code)
        ).scalar_one()
        redemption = GiftCardRedemption(
            gift_card_id=card_id,
            booking_id=booking_id,
            amount=amount,
            currency=currency,
            status=RESERVED,
        )
        self.db.add(redemption)
        self.db.flush()
        return redemption

    def get_usable_balance(self, code: str, currency: str, now: datetime) -> Optional[Decimal]:
        """Balance of an active, unexpired card in ``currency``; None when unusable."""
        balance = self.db.execute(
            select(GiftCard.balance).where(
                func.upper(GiftCard.code) == code,
                GiftCard.is_active.is_(True),
                GiftCard.currency == currency,
                or_(GiftCard.expires_at.is_(None), GiftCard.expires_at > now),
            )
        ).scalar()
        return Decimal(str(balance)) if balance is not None else None

    def get_open_redemption(self, booking_id: str) -> Optional[GiftCardRedemption]:
        """The reserved or captured redemption for a booking, if any."""
        stmt = (
            select(GiftCardRedemption)
            .where(
                GiftCardRedemption.booking_id == booking_id,
                GiftCardRedemption.status.in_((RESERVED, CAPTURED)),
            )
            .order_by(GiftCardRedemption.created_at.desc())
            .with_for_update()
        )
        return self.db.execute(stmt).scalars().first()

    def mark_captured(self, redemption_id: str, now: datetime) -> bool:
        result = self.db.execute(
            update(GiftCardRedemption)
            .where(GiftCardRedemption.id == redemption_id, GiftCardRedemption.status == RESERVED)
            .values(status=CAPTURED, captured_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release(self, redemption: GiftCardRedemption, now: datetime, *, status: str) -> bool:
        """Move a reservation to released/voided and restore the card balance exactly once."""
        result = self.db.execute(
            update(GiftCardRedemption)
            .where(GiftCardRedemption.id == redemption.id, GiftCardRedemption.status == RESERVED)
            .values(status=status, released_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self.db.execute(
            update(GiftCard)
            .where(GiftCard.id == redemption.gift_card_id)
            .values(balance=GiftCard.balance + redemption.amount)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        return True

    def is_card_usable(self, gift_card_id: str, now: datetime) -> bool:
        card = self.db.get(GiftCard, gift_card_id)
        if card is None or not card.is_active:
            return False
        expires_at = as_utc(card.expires_at)
        return expires_at is None or expires_at > now

    def find_stale_reservations(self, cutoff: datetime, limit: int = 200) -> List[GiftCardRedemption]:
        """Reservations older than ``cutoff`` whose booking never got paid."""
        stmt = (
            select(GiftCardRedemption)
            .join(Booking, Booking.id == GiftCardRedemption.booking_id)
            .where(
                GiftCardRedemption.status == RESERVED,
                GiftCardRedemption.created_at < cutoff,
                Booking.payment_status != PaymentStatus.PAID.value,
            )
            .order_by(GiftCardRedemption.created_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
