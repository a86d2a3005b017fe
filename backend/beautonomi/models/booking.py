# backend/beautonomi/models/booking.py
"""
Booking models.

A booking is created once through the atomic reserve-and-insert operation
and afterwards only changes through status transitions. Every monetary
field is a copy of the validated pricing for the attempt that created it;
nothing downstream recomputes them.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..core.enums import BookingStatus, PaymentStatus
from ..core.time_utils import as_utc
from ..database import Base

logger = logging.getLogger(__name__)


def generate_booking_number() -> str:
    """Human-facing reference, unique via the random half of a ULID."""
    return f"BK-{str(ulid.ULID())[-10:]}"


class Booking(Base):
    """A customer's reservation with a provider, plus its money snapshot."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_number = Column(String(20), nullable=False, unique=True, default=generate_booking_number)
    customer_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)

    # Location snapshot
    location_type = Column(String(20), nullable=False)
    location_id = Column(String(26), ForeignKey("provider_locations.id"), nullable=True)
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    address_city = Column(String(120), nullable=True)
    address_postal_code = Column(String(20), nullable=True)
    address_country = Column(String(80), nullable=True)

    # Blocked window, including trailing buffer
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_end_at = Column(DateTime(timezone=True), nullable=False)

    # Money snapshot
    currency = Column(String(3), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    package_id = Column(String(26), ForeignKey("service_packages.id"), nullable=True)
    package_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    promotion_id = Column(String(26), ForeignKey("promotions.id"), nullable=True)
    discount_code = Column(String(64), nullable=True)
    promotion_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    loyalty_points_redeemed = Column(Integer, nullable=False, default=0)
    loyalty_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    membership_plan_id = Column(String(26), ForeignKey("membership_plans.id"), nullable=True)
    membership_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    commission_base = Column(Numeric(12, 2), nullable=False)
    travel_fee = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    service_fee_config_id = Column(String(26), ForeignKey("platform_fee_configs.id"), nullable=True)
    service_fee_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    service_fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tip_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    loyalty_points_earned = Column(Integer, nullable=False, default=0)

    # Settlement
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_option = Column(String(20), nullable=True)
    amount_to_collect = Column(Numeric(12, 2), nullable=True)
    payment_provider = Column(String(40), nullable=True)
    payment_reference = Column(String(120), nullable=True, index=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    gift_card_id = Column(String(26), ForeignKey("gift_cards.id"), nullable=True)
    gift_card_amount = Column(Numeric(12, 2), nullable=False, default=0)
    wallet_amount = Column(Numeric(12, 2), nullable=False, default=0)

    is_group_booking = Column(Boolean, nullable=False, default=False)
    group_booking_id = Column(String(26), nullable=True, index=True)
    special_requests = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    services = relationship(
        "BookingService",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingService.scheduled_start_at",
    )
    addons = relationship("BookingAddon", cascade="all, delete-orphan")
    products = relationship("BookingProduct", cascade="all, delete-orphan")
    events = relationship("BookingEvent", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("scheduled_end_at > scheduled_at", name="ck_bookings_window"),
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_non_negative"),
    )

    @property
    def staff_id(self) -> Optional[str]:
        for line in self.services:
            if line.staff_id and line.participant_name is None:
                return line.staff_id
        return None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def starts_at(self) -> Optional[datetime]:
        return as_utc(self.scheduled_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_amount": str(self.total_amount),
            "currency": self.currency,
        }

    def __repr__(self) -> str:
        return f"<Booking {self.booking_number} status={self.status} payment={self.payment_status}>"


class BookingService(Base):
    """One scheduled service occurrence within a booking."""

    __tablename__ = "booking_services"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    offering_id = Column(String(26), ForeignKey("offerings.id"), nullable=False)
    staff_id = Column(String(26), ForeignKey("provider_staff.id"), nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    scheduled_start_at = Column(DateTime(timezone=True), nullable=False)
    scheduled_end_at = Column(DateTime(timezone=True), nullable=False)
    # Set only on rows fanned out for group participants
    participant_name = Column(String(200), nullable=True)

    booking = relationship("Booking", back_populates="services")

    __table_args__ = (
        Index("ix_booking_services_staff_window", "staff_id", "scheduled_start_at", "scheduled_end_at"),
    )


class BookingAddon(Base):
    __tablename__ = "booking_addons"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    addon_id = Column(String(26), ForeignKey("service_addons.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2), nullable=False)


class BookingProduct(Base):
    __tablename__ = "booking_products"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(26), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)


class BookingEvent(Base):
    """Immutable audit trail entry attached to a booking."""

    __tablename__ = "booking_events"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(60), nullable=False)
    event_data = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
    )
    created_by = Column(String(26), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BookingResourceAssignment(Base):
    __tablename__ = "booking_resource_assignments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_service_id = Column(String(26), ForeignKey("booking_services.id", ondelete="CASCADE"), nullable=True)
    resource_id = Column(String(26), ForeignKey("resources.id"), nullable=False, index=True)
    scheduled_start_at = Column(DateTime(timezone=True), nullable=False)
    scheduled_end_at = Column(DateTime(timezone=True), nullable=False)
