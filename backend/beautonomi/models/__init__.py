# backend/beautonomi/models/__init__.py
"""
SQLAlchemy models.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import (
    Booking,
    BookingAddon,
    BookingEvent,
    BookingProduct,
    BookingResourceAssignment,
    BookingService,
)
from .event_outbox import EventOutbox, EventOutboxStatus
from .gift_card import GiftCard, GiftCardRedemption
from .group_booking import GroupBooking, GroupBookingParticipant
from .payment import FinanceTransaction, Payment, PaymentTransaction, SavedPaymentMethod
from .platform import PlatformFeeConfig, PlatformSettings
from .promotion import LoyaltyAccount, LoyaltyRule, MembershipPlan, Promotion, UserMembership
from .provider import (
    Offering,
    Product,
    Provider,
    ProviderLocation,
    ProviderStaff,
    Resource,
    ServiceAddon,
    ServicePackage,
)
from .user import User
from .wallet import Wallet, WalletTransaction

__all__ = [
    "Booking",
    "BookingAddon",
    "BookingEvent",
    "BookingProduct",
    "BookingResourceAssignment",
    "BookingService",
    "EventOutbox",
    "EventOutboxStatus",
    "FinanceTransaction",
    "GiftCard",
    "GiftCardRedemption",
    "GroupBooking",
    "GroupBookingParticipant",
    "LoyaltyAccount",
    "LoyaltyRule",
    "MembershipPlan",
    "Offering",
    "Payment",
    "PaymentTransaction",
    "PlatformFeeConfig",
    "PlatformSettings",
    "Product",
    "Promotion",
    "Provider",
    "ProviderLocation",
    "ProviderStaff",
    "Resource",
    "SavedPaymentMethod",
    "ServiceAddon",
    "ServicePackage",
    "User",
    "UserMembership",
    "Wallet",
    "WalletTransaction",
]
