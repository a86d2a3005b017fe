"""Enumerations shared by models, schemas and services."""

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy a staff member's calendar
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.IN_PROGRESS.value,
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class LocationType(str, Enum):
    AT_HOME = "at_home"
    AT_SALON = "at_salon"


class PaymentMethodChoice(str, Enum):
    CARD = "card"
    CASH = "cash"


class PaymentOption(str, Enum):
    DEPOSIT = "deposit"
    FULL = "full"


class FundingSource(str, Enum):
    GIFT_CARD = "gift_card"
    WALLET = "wallet"
    GATEWAY = "gateway"
    CASH = "cash"
    FREE = "free"


class GiftCardRedemptionStatus(str, Enum):
    RESERVED = "reserved"
    CAPTURED = "captured"
    RELEASED = "released"
    VOIDED = "voided"


class FinanceTransactionType(str, Enum):
    PAYMENT = "payment"
    PROVIDER_EARNINGS = "provider_earnings"
    SERVICE_FEE = "service_fee"
    TIP = "tip"
    TAX = "tax"
    TRAVEL_FEE = "travel_fee"


class FeeType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
