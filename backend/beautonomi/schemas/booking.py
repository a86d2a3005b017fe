# backend/beautonomi/schemas/booking.py
"""
Booking draft and response schemas.

The draft is the client's in-progress booking; it is validated here for
shape only. Entity resolution and pricing happen in the validation stage.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import LocationType, PaymentMethodChoice, PaymentOption
from ._strict_base import StrictModel, StrictRequestModel


class RequestedService(StrictRequestModel):
    offering_id: str = Field(..., min_length=1)
    staff_id: Optional[str] = None


class BookingAddress(StrictRequestModel):
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    postal_code: Optional[str] = None
    country: Optional[str] = None


class ProductSelection(StrictRequestModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)


class GroupParticipant(StrictRequestModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    is_primary_contact: bool = False
    # Offerings this participant takes; defaults to the booking's offerings
    offering_ids: List[str] = Field(default_factory=list)


class FundingSelection(StrictRequestModel):
    """How the customer wants to pay; shared by creation and settlement retry."""

    payment_method: PaymentMethodChoice = PaymentMethodChoice.CARD
    payment_option: PaymentOption = PaymentOption.DEPOSIT
    gift_card_code: Optional[str] = None
    use_wallet: bool = False
    payment_method_id: Optional[str] = Field(
        default=None, description="Saved card to charge instead of a redirect checkout"
    )
    save_card: bool = False
    set_as_default: bool = False

    @field_validator("gift_card_code")
    @classmethod
    def _normalize_gift_card(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        code = value.strip().upper()
        return code or None


class BookingDraft(FundingSelection):
    provider_id: str = Field(..., min_length=1)
    services: List[RequestedService] = Field(..., min_length=1)
    selected_datetime: datetime
    location_type: LocationType
    location_id: Optional[str] = None
    address: Optional[BookingAddress] = None
    addon_ids: List[str] = Field(default_factory=list)
    products: List[ProductSelection] = Field(default_factory=list)
    package_id: Optional[str] = None
    promotion_code: Optional[str] = None
    loyalty_points_to_redeem: int = Field(default=0, ge=0)
    membership_plan_id: Optional[str] = None
    tip_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    is_group_booking: bool = False
    group_participants: List[GroupParticipant] = Field(default_factory=list)
    resource_ids: List[str] = Field(default_factory=list)
    allow_conflict_override: bool = False
    special_requests: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("selected_datetime")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("promotion_code")
    @classmethod
    def _normalize_promo(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().upper() or None

    @model_validator(mode="after")
    def _check_products_unique(self) -> "BookingDraft":
        ids = [item.product_id for item in self.products]
        if len(ids) != len(set(ids)):
            raise ValueError("Each product may only be listed once; use quantity instead")
        return self


class SettlementRetryRequest(FundingSelection):
    """Funding inputs for retrying settlement on an unpaid booking."""


class BookingResponse(StrictModel):
    id: str
    booking_number: str
    status: str
    payment_status: str
    provider_id: str
    scheduled_at: datetime
    scheduled_end_at: datetime
    currency: str
    subtotal: Decimal
    discount_amount: Decimal
    commission_base: Decimal
    travel_fee: Decimal
    tax_amount: Decimal
    service_fee_amount: Decimal
    tip_amount: Decimal
    total_amount: Decimal
    amount_to_collect: Optional[Decimal] = None
    gift_card_amount: Decimal
    wallet_amount: Decimal
    payment_provider: Optional[str] = None
    group_booking_id: Optional[str] = None


class BookingCreateResponse(StrictModel):
    booking: BookingResponse
    payment_url: Optional[str] = None
