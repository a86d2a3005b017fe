# backend/beautonomi/services/booking_validation_service.py
"""
Booking validation stage.

Turns a raw ``BookingDraft`` into an immutable ``ValidatedBookingData``:
every referenced id is resolved to an active entity, all money is computed
through the pricing policy, services are laid out on the timeline, and the
slot is pre-checked for conflicts. The only writes happen later, in the
creation service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingStatus, LocationType
from ..core.exceptions import BookingValidationException, SlotConflictException
from ..core.time_utils import as_utc, utc_now
from ..models.provider import Offering, Product, Provider, ProviderStaff, ServiceAddon
from ..repositories.booking_repository import BookingRepository
from ..repositories.catalog_repository import CatalogRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingAddress, BookingDraft, GroupParticipant
from .base import BaseService
from .platform_settings_service import PlatformSettingsService
from .pricing_policy import (
    ZERO,
    DiscountKind,
    LoyaltyRedemption,
    MembershipRule,
    PackageRule,
    PlatformSettingsSnapshot,
    PricingBreakdown,
    PricingInputs,
    PricingRuleViolation,
    PromotionRule,
    ServiceFeeRule,
    calculate_booking_price,
    round_money,
    to_decimal,
)


@dataclass(frozen=True)
class ServiceLine:
    """One scheduled service; ``end_at`` excludes the trailing buffer."""

    offering_id: str
    staff_id: Optional[str]
    duration_minutes: int
    buffer_minutes: int
    price: Decimal
    start_at: datetime
    end_at: datetime
    participant_name: Optional[str] = None

    @property
    def blocked_until(self) -> datetime:
        return self.end_at + timedelta(minutes=self.buffer_minutes)

    def as_row(self, currency: str) -> Dict[str, object]:
        return {
            "offering_id": self.offering_id,
            "staff_id": self.staff_id,
            "duration_minutes": self.duration_minutes,
            "price": self.price,
            "currency": currency,
            "scheduled_start_at": self.start_at,
            "scheduled_end_at": self.end_at,
            "participant_name": self.participant_name,
        }


@dataclass(frozen=True)
class ConflictCheck:
    conflicting_booking_ids: Tuple[str, ...] = ()
    override_permitted: bool = False

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicting_booking_ids)

    @property
    def uses_override(self) -> bool:
        return self.has_conflict and self.override_permitted


@dataclass(frozen=True)
class ValidatedBookingData:
    """Single source of truth for one booking attempt; never recomputed downstream."""

    customer_id: str
    customer_email: Optional[str]
    provider_id: str
    currency: str
    location_type: LocationType
    location_id: Optional[str]
    address: Optional[BookingAddress]
    start_at: datetime
    end_at: datetime
    primary_staff_id: Optional[str]
    service_lines: Tuple[ServiceLine, ...]
    participant_lines: Tuple[ServiceLine, ...]
    offerings: Mapping[str, Offering]
    staff: Mapping[str, ProviderStaff]
    addons: Mapping[str, ServiceAddon]
    products: Mapping[str, Product]
    product_quantities: Mapping[str, int]
    resource_ids: Tuple[str, ...]
    resources_explicit: bool
    pricing: PricingBreakdown
    appointment_status: BookingStatus
    conflict: ConflictCheck
    requires_deposit: bool
    deposit_percentage: Decimal
    package_id: Optional[str] = None
    promotion_id: Optional[str] = None
    promotion_code: Optional[str] = None
    membership_plan_id: Optional[str] = None
    is_group_booking: bool = False
    group_participants: Tuple[GroupParticipant, ...] = ()
    special_requests: Optional[str] = None
    requires_confirmation: bool = False

    @property
    def total_amount(self) -> Decimal:
        return self.pricing.total_amount

    @property
    def commission_base(self) -> Decimal:
        return self.pricing.commission_base

    def staff_windows(self) -> StaffWindows:
        return staff_windows(self.service_lines + self.participant_lines)

    def booking_fields(self) -> Dict[str, object]:
        """Column values for the booking row; money is copied, never recomputed."""
        pricing = self.pricing
        address = self.address
        return {
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "status": self.appointment_status.value,
            "location_type": self.location_type.value,
            "location_id": self.location_id,
            "address_line1": address.line1 if address else None,
            "address_line2": address.line2 if address else None,
            "address_city": address.city if address else None,
            "address_postal_code": address.postal_code if address else None,
            "address_country": address.country if address else None,
            "currency": self.currency,
            "subtotal": pricing.items_subtotal,
            "package_id": self.package_id,
            "package_discount_amount": pricing.discount(DiscountKind.PACKAGE),
            "promotion_id": self.promotion_id,
            "discount_code": self.promotion_code,
            "promotion_discount_amount": pricing.discount(DiscountKind.PROMOTION),
            "loyalty_points_redeemed": pricing.loyalty_points_redeemed,
            "loyalty_discount_amount": pricing.discount(DiscountKind.LOYALTY),
            "membership_plan_id": self.membership_plan_id,
            "membership_discount_amount": pricing.discount(DiscountKind.MEMBERSHIP),
            "discount_amount": pricing.discount_total,
            "commission_base": pricing.commission_base,
            "travel_fee": pricing.travel_fee,
            "tax_rate": pricing.tax_rate_percent,
            "tax_amount": pricing.tax_amount,
            "service_fee_config_id": pricing.service_fee_config_id,
            "service_fee_percentage": pricing.service_fee_percentage,
            "service_fee_amount": pricing.service_fee_amount,
            "tip_amount": pricing.tip_amount,
            "total_amount": pricing.total_amount,
            "loyalty_points_earned": pricing.loyalty_points_earned,
            "is_group_booking": self.is_group_booking,
            "special_requests": self.special_requests,
        }


StaffWindows = Dict[str, Tuple[datetime, datetime]]


def staff_windows(lines: Sequence[ServiceLine]) -> StaffWindows:
    """Blocked window per staff member, ordered by staff id so locks are taken consistently."""
    windows: StaffWindows = {}
    for line in lines:
        if not line.staff_id:
            continue
        start, end = windows.get(line.staff_id, (line.start_at, line.blocked_until))
        windows[line.staff_id] = (min(start, line.start_at), max(end, line.blocked_until))
    return {staff_id: windows[staff_id] for staff_id in sorted(windows)}


def _invalid(message: str, code: str = "VALIDATION_ERROR", **details: object) -> BookingValidationException:
    return BookingValidationException(message, code=code, details=dict(details))


class BookingValidationService(BaseService):
    """Resolve, price and schedule a booking draft without writing anything."""

    def __init__(
        self,
        db: Session,
        catalog_repository: Optional[CatalogRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
        settings_snapshot: Optional[PlatformSettingsSnapshot] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.catalog = catalog_repository or RepositoryFactory.create_catalog_repository(db)
        self.bookings = booking_repository or RepositoryFactory.create_booking_repository(db)
        self._snapshot = settings_snapshot
        self._clock = clock

    @property
    def snapshot(self) -> PlatformSettingsSnapshot:
        if self._snapshot is None:
            self._snapshot = PlatformSettingsService(self.db).get_snapshot()
        return self._snapshot

    @BaseService.measure_operation("validate_booking")
    def validate(self, draft: BookingDraft, user_id: str) -> ValidatedBookingData:
        """
        Validate a draft for the acting user.

        Raises:
            BookingValidationException: a referenced entity or rule rejected the draft
            SlotConflictException: the slot is taken and no override applies
        """
        now = self._clock()
        customer = self.catalog.get_user(user_id)
        if customer is None or not customer.is_active:
            raise _invalid("Customer account not found", code="UNKNOWN_CUSTOMER")

        provider = self.catalog.get_provider(draft.provider_id)
        if provider is None or not provider.is_active:
            raise _invalid("Provider not found or inactive", code="PROVIDER_UNAVAILABLE")
        currency = (provider.currency or settings.default_currency).upper()

        self._check_location(draft, provider)

        if draft.is_group_booking and not draft.group_participants:
            raise _invalid(
                "Group bookings need at least one participant", code="GROUP_PARTICIPANTS_REQUIRED"
            )

        offering_ids = [item.offering_id for item in draft.services]
        for participant in draft.group_participants:
            offering_ids.extend(participant.offering_ids)
        offerings = self._resolve_offerings(draft, provider, offering_ids)
        staff_by_line = self._resolve_staff(draft, provider, offerings)
        addons = self._resolve_addons(draft, provider)
        products, quantities = self._resolve_products(draft, provider)

        at_home = draft.location_type == LocationType.AT_HOME
        service_lines, participant_lines, start_at, end_at = self._lay_out_timeline(
            draft, offerings, staff_by_line, at_home
        )

        services_subtotal = sum(
            (line.price for line in service_lines + participant_lines), ZERO
        )
        addons_subtotal = sum((to_decimal(addon.price) for addon in addons.values()), ZERO)
        products_subtotal = sum(
            (to_decimal(products[pid].retail_price) * qty for pid, qty in quantities.items()), ZERO
        )
        travel_fee = round_money(provider.travel_fee) if at_home else ZERO

        if at_home and provider.minimum_mobile_booking_amount is not None:
            minimum = to_decimal(provider.minimum_mobile_booking_amount)
            if services_subtotal + addons_subtotal + products_subtotal + travel_fee < minimum:
                raise _invalid(
                    f"Minimum booking amount for at-home services is {minimum}",
                    code="BELOW_MOBILE_MINIMUM",
                    minimum=str(minimum),
                )

        tip_amount = round_money(draft.tip_amount) if provider.tips_enabled else ZERO

        package = self._resolve_package(draft, provider)
        promotion = self._resolve_promotion(draft, provider, now)
        loyalty = self._resolve_loyalty(draft, user_id, currency)
        membership = self._resolve_membership(draft, user_id, provider, now)
        loyalty_rule = self.catalog.get_active_loyalty_rule(currency)

        inputs = PricingInputs(
            services_subtotal=round_money(services_subtotal),
            addons_subtotal=round_money(addons_subtotal),
            products_subtotal=round_money(products_subtotal),
            travel_fee=travel_fee,
            tip_amount=tip_amount,
            tax_rate_percent=self._tax_rate(provider),
            service_fee=self._service_fee_rule(provider),
            package=package,
            promotion=promotion,
            loyalty=loyalty,
            membership=membership,
            points_per_currency_unit=(
                to_decimal(loyalty_rule.points_per_currency_unit) if loyalty_rule else ZERO
            ),
        )
        try:
            pricing = calculate_booking_price(inputs)
        except PricingRuleViolation as exc:
            raise _invalid(exc.message, code=exc.code) from exc

        primary_staff_id = service_lines[0].staff_id if service_lines else None
        conflict = self._check_conflicts(
            draft, provider, staff_windows(service_lines + participant_lines)
        )
        resource_ids = self._check_resources(draft, provider, offerings, start_at, end_at)

        requires_confirmation = bool(provider.requires_booking_confirmation)
        validated = ValidatedBookingData(
            customer_id=customer.id,
            customer_email=customer.email,
            provider_id=provider.id,
            currency=currency,
            location_type=draft.location_type,
            location_id=draft.location_id if not at_home else None,
            address=draft.address if at_home else None,
            start_at=start_at,
            end_at=end_at,
            primary_staff_id=primary_staff_id,
            service_lines=service_lines,
            participant_lines=participant_lines,
            offerings=MappingProxyType(dict(offerings)),
            staff=MappingProxyType(
                {line.staff_id: staff_by_line[i] for i, line in enumerate(service_lines) if line.staff_id}
            ),
            addons=MappingProxyType(dict(addons)),
            products=MappingProxyType(dict(products)),
            product_quantities=MappingProxyType(dict(quantities)),
            resource_ids=resource_ids,
            resources_explicit=bool(draft.resource_ids),
            pricing=pricing,
            appointment_status=BookingStatus.PENDING if requires_confirmation else BookingStatus.CONFIRMED,
            conflict=conflict,
            requires_deposit=bool(provider.requires_deposit),
            deposit_percentage=(
                to_decimal(provider.deposit_percentage)
                if provider.deposit_percentage is not None
                else to_decimal(settings.default_deposit_percentage)
            ),
            package_id=package.package_id if package else None,
            promotion_id=promotion.promotion_id if promotion else None,
            promotion_code=promotion.code if promotion else None,
            membership_plan_id=membership.plan_id if membership else None,
            is_group_booking=draft.is_group_booking,
            group_participants=tuple(draft.group_participants),
            special_requests=draft.special_requests,
            requires_confirmation=requires_confirmation,
        )
        self.log_operation(
            "validate_booking",
            provider_id=provider.id,
            total_amount=str(pricing.total_amount),
            has_conflict=conflict.has_conflict,
        )
        return validated

    # ----------------------------------------------------------- resolution
    def _check_location(self, draft: BookingDraft, provider: Provider) -> None:
        if draft.location_type == LocationType.AT_SALON:
            if not draft.location_id:
                raise _invalid("location_id is required for salon bookings", code="LOCATION_REQUIRED")
            location = self.catalog.get_location(provider.id, draft.location_id)
            if location is None or not location.is_active:
                raise _invalid("Location not found for this provider", code="LOCATION_MISMATCH")
        elif draft.address is None:
            raise _invalid("An address is required for at-home bookings", code="ADDRESS_REQUIRED")

    def _resolve_offerings(
        self, draft: BookingDraft, provider: Provider, offering_ids: Sequence[str]
    ) -> Dict[str, Offering]:
        offerings = self.catalog.get_offerings(provider.id, offering_ids)
        for offering_id in dict.fromkeys(offering_ids):
            offering = offerings.get(offering_id)
            if offering is None or not offering.is_active:
                raise _invalid(
                    "Unknown or inactive offering", code="UNKNOWN_OFFERING", offering_id=offering_id
                )
            if draft.location_type == LocationType.AT_HOME and not offering.supports_at_home:
                raise _invalid(
                    f"{offering.title} is not available at home",
                    code="LOCATION_TYPE_MISMATCH",
                    offering_id=offering_id,
                )
        return offerings

    def _resolve_staff(
        self, draft: BookingDraft, provider: Provider, offerings: Mapping[str, Offering]
    ) -> List[ProviderStaff]:
        requested = self.catalog.get_staff(provider.id, [s.staff_id for s in draft.services if s.staff_id])
        resolved: List[ProviderStaff] = []
        for item in draft.services:
            if item.staff_id:
                member = requested.get(item.staff_id)
                if (
                    member is None
                    or not member.is_active
                    or not self.catalog.is_staff_qualified(member.id, item.offering_id)
                ):
                    raise _invalid(
                        "Staff unavailable for offering",
                        code="STAFF_UNAVAILABLE",
                        staff_id=item.staff_id,
                        offering_id=item.offering_id,
                    )
            else:
                member = self.catalog.find_qualified_staff(provider.id, item.offering_id)
                if member is None:
                    raise _invalid(
                        f"No staff available for {offerings[item.offering_id].title}",
                        code="STAFF_UNAVAILABLE",
                        offering_id=item.offering_id,
                    )
            resolved.append(member)
        return resolved

    def _resolve_addons(self, draft: BookingDraft, provider: Provider) -> Dict[str, ServiceAddon]:
        addons = self.catalog.get_addons(provider.id, draft.addon_ids)
        for addon_id in draft.addon_ids:
            addon = addons.get(addon_id)
            if addon is None or not addon.is_active:
                raise _invalid("Unknown or inactive add-on", code="UNKNOWN_ADDON", addon_id=addon_id)
        return addons

    def _resolve_products(
        self, draft: BookingDraft, provider: Provider
    ) -> Tuple[Dict[str, Product], Dict[str, int]]:
        products = self.catalog.get_products(provider.id, [p.product_id for p in draft.products])
        quantities: Dict[str, int] = {}
        for selection in draft.products:
            product = products.get(selection.product_id)
            if product is None or not product.is_active:
                raise _invalid(
                    "Unknown or inactive product", code="UNKNOWN_PRODUCT", product_id=selection.product_id
                )
            if product.track_stock_quantity and (product.quantity or 0) < selection.quantity:
                raise _invalid(
                    f"Only {product.quantity or 0} of {product.name} left in stock",
                    code="INSUFFICIENT_STOCK",
                    product_id=product.id,
                    available=product.quantity or 0,
                )
            quantities[product.id] = selection.quantity
        return products, quantities

    def _resolve_package(self, draft: BookingDraft, provider: Provider) -> Optional[PackageRule]:
        if not draft.package_id:
            return None
        package = self.catalog.get_package(provider.id, draft.package_id)
        if package is None or not package.is_active:
            raise _invalid("Unknown or inactive package", code="UNKNOWN_PACKAGE")
        return PackageRule(
            package_id=package.id,
            price=to_decimal(package.price) if package.price is not None else None,
            percentage=(
                to_decimal(package.discount_percentage)
                if package.discount_percentage is not None
                else None
            ),
        )

    def _resolve_promotion(
        self, draft: BookingDraft, provider: Provider, now: datetime
    ) -> Optional[PromotionRule]:
        if not draft.promotion_code:
            return None
        promo = self.catalog.get_promotion_by_code(draft.promotion_code)
        if promo is None or not promo.is_active:
            raise _invalid("Invalid promo code", code="INVALID_PROMO_CODE")
        if promo.provider_id and promo.provider_id != provider.id:
            raise _invalid("Invalid promo code", code="INVALID_PROMO_CODE")
        valid_from = as_utc(promo.valid_from)
        valid_until = as_utc(promo.valid_until)
        if (valid_from and now < valid_from) or (valid_until and now > valid_until):
            raise _invalid("Promo code is not currently valid", code="PROMO_EXPIRED")
        if promo.usage_limit is not None and (promo.usage_count or 0) >= promo.usage_limit:
            raise _invalid("Promo code usage limit reached", code="PROMO_USAGE_LIMIT")
        if promo.location_id and promo.location_id != draft.location_id:
            raise _invalid("Promo code is not valid for this location", code="PROMO_LOCATION_MISMATCH")
        return PromotionRule(
            promotion_id=promo.id,
            code=promo.code.upper(),
            discount_type=promo.discount_type,
            value=to_decimal(promo.discount_value),
            min_purchase_amount=(
                to_decimal(promo.min_purchase_amount) if promo.min_purchase_amount is not None else None
            ),
            max_discount_amount=(
                to_decimal(promo.max_discount_amount) if promo.max_discount_amount is not None else None
            ),
        )

    def _resolve_loyalty(
        self, draft: BookingDraft, user_id: str, currency: str
    ) -> Optional[LoyaltyRedemption]:
        points = draft.loyalty_points_to_redeem
        if points <= 0:
            return None
        rule = self.catalog.get_active_loyalty_rule(currency)
        if rule is None:
            raise _invalid("Loyalty redemption is not available", code="LOYALTY_UNAVAILABLE")
        minimum = rule.min_redemption_points or settings.default_min_redemption_points
        if points < minimum:
            raise _invalid(
                f"Minimum {minimum} points required for redemption",
                code="LOYALTY_BELOW_MINIMUM",
                minimum=minimum,
            )
        balance = self.catalog.get_loyalty_balance(user_id)
        if points > balance:
            raise _invalid(
                "Insufficient loyalty points", code="LOYALTY_INSUFFICIENT_POINTS", balance=balance
            )
        max_pct = (
            rule.max_redemption_percentage
            if rule.max_redemption_percentage is not None
            else settings.default_max_redemption_percentage
        )
        return LoyaltyRedemption(
            points=points,
            redemption_rate=to_decimal(rule.redemption_rate),
            max_redemption_percentage=to_decimal(max_pct),
        )

    def _resolve_membership(
        self, draft: BookingDraft, user_id: str, provider: Provider, now: datetime
    ) -> Optional[MembershipRule]:
        plan = self.catalog.get_active_membership(user_id, provider.id, now)
        if draft.membership_plan_id and (plan is None or plan.id != draft.membership_plan_id):
            raise _invalid("Membership is not active for this provider", code="MEMBERSHIP_INACTIVE")
        if plan is None or not plan.discount_percent:
            return None
        return MembershipRule(plan_id=plan.id, discount_percent=to_decimal(plan.discount_percent))

    def _tax_rate(self, provider: Provider) -> Decimal:
        if provider.tax_rate_percent is not None:
            return to_decimal(provider.tax_rate_percent)
        return self.snapshot.default_tax_rate_percent

    def _service_fee_rule(self, provider: Provider) -> Optional[ServiceFeeRule]:
        config = self.catalog.get_fee_config(provider.customer_fee_config_id)
        if config is None:
            return self.snapshot.service_fee
        return ServiceFeeRule(
            fee_type=config.fee_type,
            percentage=to_decimal(config.fee_percentage),
            fixed_amount=to_decimal(config.fee_fixed_amount),
            min_booking_amount=(
                to_decimal(config.min_booking_amount) if config.min_booking_amount is not None else None
            ),
            max_fee_amount=to_decimal(config.max_fee_amount) if config.max_fee_amount is not None else None,
            config_id=config.id,
        )

    # --------------------------------------------------------------- timing
    def _lay_out_timeline(
        self,
        draft: BookingDraft,
        offerings: Mapping[str, Offering],
        staff: Sequence[ProviderStaff],
        at_home: bool,
    ) -> Tuple[Tuple[ServiceLine, ...], Tuple[ServiceLine, ...], datetime, datetime]:
        """
        Place services back to back from the selected start.

        Each service occupies its duration plus buffer on the cursor; group
        participants follow the primary customer on the same timeline.
        """
        start_at = draft.selected_datetime
        cursor = start_at

        def line_for(offering_id: str, staff_id: Optional[str], participant: Optional[str]) -> ServiceLine:
            nonlocal cursor
            offering = offerings[offering_id]
            price = to_decimal(offering.price)
            if at_home:
                price += to_decimal(offering.at_home_price_adjustment)
            duration = int(offering.duration_minutes)
            buffer = int(offering.buffer_minutes or 0)
            line = ServiceLine(
                offering_id=offering_id,
                staff_id=staff_id,
                duration_minutes=duration,
                buffer_minutes=buffer,
                price=round_money(price),
                start_at=cursor,
                end_at=cursor + timedelta(minutes=duration),
                participant_name=participant,
            )
            cursor = cursor + timedelta(minutes=duration + buffer)
            return line

        primary = tuple(
            line_for(item.offering_id, staff[i].id, None) for i, item in enumerate(draft.services)
        )
        staff_for_offering = {line.offering_id: line.staff_id for line in primary}
        default_staff = primary[0].staff_id if primary else None

        participants: List[ServiceLine] = []
        for participant in draft.group_participants:
            participant_offerings = participant.offering_ids or [item.offering_id for item in draft.services]
            for offering_id in participant_offerings:
                participants.append(
                    line_for(offering_id, staff_for_offering.get(offering_id, default_staff), participant.name)
                )
        return primary, tuple(participants), start_at, cursor

    # ------------------------------------------------------------ conflicts
    def _check_conflicts(
        self, draft: BookingDraft, provider: Provider, windows: StaffWindows
    ) -> ConflictCheck:
        conflicting: List[str] = []
        for staff_id, (start_at, end_at) in windows.items():
            found = self.bookings.find_conflicting_booking_ids(staff_id, start_at, end_at)
            if not found:
                continue
            if not (draft.allow_conflict_override and provider.allow_double_booking_override):
                self.logger.info(
                    "Slot conflict for staff %s between %s and %s", staff_id, start_at, end_at
                )
                raise SlotConflictException(details={"staff_id": staff_id})
            for booking_id in found:
                if booking_id not in conflicting:
                    conflicting.append(booking_id)
        if not conflicting:
            return ConflictCheck()
        return ConflictCheck(conflicting_booking_ids=tuple(conflicting), override_permitted=True)

    def _check_resources(
        self,
        draft: BookingDraft,
        provider: Provider,
        offerings: Mapping[str, Offering],
        start_at: datetime,
        end_at: datetime,
    ) -> Tuple[str, ...]:
        if draft.resource_ids:
            requested = list(dict.fromkeys(draft.resource_ids))
        else:
            requested = []
            for item in draft.services:
                requested.extend(r.id for r in offerings[item.offering_id].required_resources)
            requested = list(dict.fromkeys(requested))
        if not requested:
            return ()

        resources = {r.id: r for r in self.catalog.get_resources(provider.id, requested)}
        for resource_id in requested:
            resource = resources.get(resource_id)
            if resource is None or not resource.is_active:
                raise _invalid("Unknown or inactive resource", code="UNKNOWN_RESOURCE", resource_id=resource_id)

        busy = self.bookings.find_busy_resource_ids(requested, start_at, end_at)
        if busy:
            raise SlotConflictException(
                "A required resource is not available at this time. Please select another time.",
                code="RESOURCE_UNAVAILABLE",
                details={"resource_ids": sorted(busy)},
            )
        return tuple(requested)
