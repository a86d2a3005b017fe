# backend/beautonomi/models/promotion.py
"""Promotions, memberships and loyalty reference data."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Promotion(Base):
    """A coupon code; ``location_id`` optionally restricts it to one location."""

    __tablename__ = "promotions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=True, index=True)
    code = Column(String(64), nullable=False, unique=True)
    discount_type = Column(String(20), nullable=False, default="percentage")
    discount_value = Column(Numeric(12, 2), nullable=False)
    min_purchase_amount = Column(Numeric(12, 2), nullable=True)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    location_id = Column(String(26), ForeignKey("provider_locations.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class UserMembership(Base):
    __tablename__ = "user_memberships"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(String(26), ForeignKey("membership_plans.id"), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    expires_at = Column(DateTime(timezone=True), nullable=True)


class LoyaltyRule(Base):
    """Earn and redemption rates; the newest active rule for a currency applies."""

    __tablename__ = "loyalty_rules"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    currency = Column(String(3), nullable=False, default="ZAR")
    points_per_currency_unit = Column(Numeric(8, 4), nullable=False, default=0)
    # Points needed for one currency unit of discount
    redemption_rate = Column(Numeric(8, 2), nullable=False, default=100)
    min_redemption_points = Column(Integer, nullable=True)
    max_redemption_percentage = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    effective_from = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    points_balance = Column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("user_id", name="uq_loyalty_accounts_user"),)
