# backend/beautonomi/models/platform.py
"""Platform-level fee configuration and the settings document."""

from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class PlatformFeeConfig(Base):
    """Customer-facing service fee charged by the platform on each booking."""

    __tablename__ = "platform_fee_configs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(120), nullable=False, default="default")
    fee_type = Column(String(20), nullable=False, default="percentage")
    fee_percentage = Column(Numeric(5, 2), nullable=True)
    fee_fixed_amount = Column(Numeric(12, 2), nullable=True)
    min_booking_amount = Column(Numeric(12, 2), nullable=True)
    max_fee_amount = Column(Numeric(12, 2), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class PlatformSettings(Base):
    """
    Versioned platform settings document.

    Only the newest active row is authoritative. The payout section carries
    ``commission_enabled`` and ``platform_commission_percentage``.
    """

    __tablename__ = "platform_settings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    settings = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
