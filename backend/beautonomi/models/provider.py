# backend/beautonomi/models/provider.py
"""
Provider catalog models.

Providers (salons or mobile professionals) own staff, locations, bookable
offerings, add-ons, retail products, packages and physical resources.
Everything here is reference data read by the validation stage.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

staff_offerings = Table(
    "staff_offerings",
    Base.metadata,
    Column("staff_id", String(26), ForeignKey("provider_staff.id", ondelete="CASCADE"), primary_key=True),
    Column("offering_id", String(26), ForeignKey("offerings.id", ondelete="CASCADE"), primary_key=True),
)

offering_resources = Table(
    "offering_resources",
    Base.metadata,
    Column("offering_id", String(26), ForeignKey("offerings.id", ondelete="CASCADE"), primary_key=True),
    Column("resource_id", String(26), ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
)


class Provider(Base):
    """A salon or mobile professional selling services on the marketplace."""

    __tablename__ = "providers"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    business_name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    currency = Column(String(3), nullable=False, default="ZAR")

    # Payment policy
    requires_deposit = Column(Boolean, nullable=False, default=False)
    deposit_percentage = Column(Numeric(5, 2), nullable=True)
    tips_enabled = Column(Boolean, nullable=False, default=True)
    tax_rate_percent = Column(Numeric(5, 2), nullable=True)
    customer_fee_config_id = Column(String(26), ForeignKey("platform_fee_configs.id"), nullable=True)

    # Mobile services
    travel_fee = Column(Numeric(12, 2), nullable=False, default=0)
    minimum_mobile_booking_amount = Column(Numeric(12, 2), nullable=True)

    # Appointment policy
    requires_booking_confirmation = Column(Boolean, nullable=False, default=False)
    allow_double_booking_override = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    staff = relationship("ProviderStaff", back_populates="provider")
    fee_config = relationship("PlatformFeeConfig")

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ProviderStaff(Base):
    """A staff member whose calendar bookings are reserved against."""

    __tablename__ = "provider_staff"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    provider = relationship("Provider", back_populates="staff")
    offerings = relationship("Offering", secondary=staff_offerings, back_populates="staff")


class ProviderLocation(Base):
    __tablename__ = "provider_locations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address_line1 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Offering(Base):
    """A bookable service with price, duration and buffer."""

    __tablename__ = "offerings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="ZAR")
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    supports_at_home = Column(Boolean, nullable=False, default=False)
    at_home_price_adjustment = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    staff = relationship("ProviderStaff", secondary=staff_offerings, back_populates="offerings")
    required_resources = relationship("Resource", secondary=offering_resources)


class Resource(Base):
    """A physical resource (chair, room, basin) that a service occupies."""

    __tablename__ = "resources"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class ServiceAddon(Base):
    __tablename__ = "service_addons"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class Product(Base):
    """A retail product; stock is only enforced when ``track_stock_quantity`` is set."""

    __tablename__ = "products"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    retail_price = Column(Numeric(12, 2), nullable=False)
    track_stock_quantity = Column(Boolean, nullable=False, default=False)
    quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class ServicePackage(Base):
    """A bundle price (or percentage) applied to the booked services."""

    __tablename__ = "service_packages"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
