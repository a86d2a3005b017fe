# backend/beautonomi/services/pricing_policy.py
"""
Pure pricing policy for a booking attempt.

Everything monetary about a booking is derived here from a fixed-shape
input: the discount cascade, tax, the platform service fee, the
commission base, the total, loyalty points earned, the deposit amount
and the platform commission. Nothing in this module touches the database.

Definitions
-----------
items subtotal
    services (incl. at-home adjustment) + add-ons + products
commission base
    items subtotal minus every discount; never negative
discounted subtotal
    commission base + travel fee (travel is never discounted)
total
    commission base + travel fee + tax + service fee + tip
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
import math
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from ..core.enums import FeeType, PaymentOption

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce DB/JSON numerics (float, int, str, Decimal, None) to Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError("Monetary values must be finite")
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class PricingRuleViolation(ValueError):
    """A discount rule rejected the booking (e.g. promo minimum not met)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class DiscountKind(str, Enum):
    PACKAGE = "package"
    PROMOTION = "promotion"
    LOYALTY = "loyalty"
    MEMBERSHIP = "membership"


DISCOUNT_ORDER: Tuple[DiscountKind, ...] = (
    DiscountKind.PACKAGE,
    DiscountKind.PROMOTION,
    DiscountKind.LOYALTY,
    DiscountKind.MEMBERSHIP,
)


@dataclass(frozen=True)
class PackageRule:
    package_id: str
    price: Optional[Decimal] = None
    percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class PromotionRule:
    promotion_id: str
    code: str
    discount_type: str
    value: Decimal
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class LoyaltyRedemption:
    points: int
    # Points required per currency unit of discount
    redemption_rate: Decimal
    max_redemption_percentage: Decimal


@dataclass(frozen=True)
class MembershipRule:
    plan_id: str
    discount_percent: Decimal


@dataclass(frozen=True)
class ServiceFeeRule:
    fee_type: str
    percentage: Decimal = ZERO
    fixed_amount: Decimal = ZERO
    min_booking_amount: Optional[Decimal] = None
    max_fee_amount: Optional[Decimal] = None
    config_id: Optional[str] = None


@dataclass(frozen=True)
class PlatformSettingsSnapshot:
    """Immutable view of the platform settings used for one computation."""

    commission_enabled: bool = False
    commission_percentage: Decimal = ZERO
    default_tax_rate_percent: Decimal = ZERO
    service_fee: Optional[ServiceFeeRule] = None

    @classmethod
    def from_document(
        cls, document: Mapping[str, Any], *, default_tax_rate_percent: Any = ZERO
    ) -> "PlatformSettingsSnapshot":
        payouts = document.get("payouts") or {}
        fees = document.get("fees") or {}
        service_fee = None
        if fees.get("service_fee_type"):
            service_fee = ServiceFeeRule(
                fee_type=str(fees.get("service_fee_type")),
                percentage=to_decimal(fees.get("service_fee_percentage")),
                fixed_amount=to_decimal(fees.get("service_fee_fixed_amount")),
                min_booking_amount=(
                    to_decimal(fees["service_fee_min_booking_amount"])
                    if fees.get("service_fee_min_booking_amount") is not None
                    else None
                ),
                max_fee_amount=(
                    to_decimal(fees["service_fee_max_amount"])
                    if fees.get("service_fee_max_amount") is not None
                    else None
                ),
            )
        tax_rate = (document.get("taxes") or {}).get("default_tax_rate_percent")
        return cls(
            commission_enabled=payouts.get("commission_enabled") is not False,
            commission_percentage=to_decimal(payouts.get("platform_commission_percentage")),
            default_tax_rate_percent=to_decimal(
                tax_rate if tax_rate is not None else default_tax_rate_percent
            ),
            service_fee=service_fee,
        )


@dataclass(frozen=True)
class PricingInputs:
    """Fixed-shape input to the pricing policy; all amounts in currency units."""

    services_subtotal: Decimal
    addons_subtotal: Decimal = ZERO
    products_subtotal: Decimal = ZERO
    travel_fee: Decimal = ZERO
    tip_amount: Decimal = ZERO
    tax_rate_percent: Decimal = ZERO
    service_fee: Optional[ServiceFeeRule] = None
    package: Optional[PackageRule] = None
    promotion: Optional[PromotionRule] = None
    loyalty: Optional[LoyaltyRedemption] = None
    membership: Optional[MembershipRule] = None
    points_per_currency_unit: Decimal = ZERO

    @property
    def items_subtotal(self) -> Decimal:
        return round_money(self.services_subtotal + self.addons_subtotal + self.products_subtotal)


@dataclass(frozen=True)
class DiscountStep:
    """One stage of the cascade: computes its amount from the running subtotal."""

    kind: DiscountKind
    compute: Callable[[Decimal], Decimal]
    reference_id: Optional[str] = None


@dataclass(frozen=True)
class DiscountLine:
    kind: DiscountKind
    amount: Decimal
    subtotal_before: Decimal
    subtotal_after: Decimal
    reference_id: Optional[str] = None


@dataclass(frozen=True)
class PricingBreakdown:
    items_subtotal: Decimal
    discounts: Tuple[DiscountLine, ...]
    commission_base: Decimal
    travel_fee: Decimal
    discounted_subtotal: Decimal
    tax_rate_percent: Decimal
    tax_amount: Decimal
    service_fee_percentage: Decimal
    service_fee_amount: Decimal
    service_fee_config_id: Optional[str]
    tip_amount: Decimal
    total_amount: Decimal
    loyalty_points_earned: int
    loyalty_points_redeemed: int = 0

    def discount(self, kind: DiscountKind) -> Decimal:
        return sum((line.amount for line in self.discounts if line.kind == kind), ZERO)

    @property
    def discount_total(self) -> Decimal:
        return sum((line.amount for line in self.discounts), ZERO)


def apply_discount_cascade(
    subtotal: Decimal, steps: Sequence[DiscountStep]
) -> Tuple[Decimal, Tuple[DiscountLine, ...]]:
    """
    Apply discounts in the fixed package -> promotion -> loyalty -> membership order.

    Each step sees the running subtotal left by the previous one and is capped
    by it, so the result is non-negative and non-increasing step by step.

    Raises:
        ValueError: steps are out of order or a kind appears twice
    """
    positions = [DISCOUNT_ORDER.index(step.kind) for step in steps]
    if positions != sorted(positions) or len(set(positions)) != len(positions):
        raise ValueError(
            "Discounts must be applied in order: " + " -> ".join(kind.value for kind in DISCOUNT_ORDER)
        )

    running = round_money(max(subtotal, ZERO))
    lines = []
    for step in steps:
        raw = round_money(step.compute(running))
        amount = min(max(raw, ZERO), running)
        after = running - amount
        lines.append(
            DiscountLine(
                kind=step.kind,
                amount=amount,
                subtotal_before=running,
                subtotal_after=after,
                reference_id=step.reference_id,
            )
        )
        running = after
    return running, tuple(lines)


def _package_step(rule: PackageRule, services_subtotal: Decimal) -> DiscountStep:
    def compute(running: Decimal) -> Decimal:
        if rule.price is not None:
            return max(ZERO, services_subtotal - rule.price)
        if rule.percentage:
            return services_subtotal * rule.percentage / HUNDRED
        return ZERO

    return DiscountStep(DiscountKind.PACKAGE, compute, rule.package_id)


def _promotion_step(rule: PromotionRule) -> DiscountStep:
    def compute(running: Decimal) -> Decimal:
        if rule.min_purchase_amount is not None and running < rule.min_purchase_amount:
            raise PricingRuleViolation(
                "PROMO_MIN_PURCHASE",
                f"Minimum purchase of {rule.min_purchase_amount} required for code {rule.code}",
            )
        if rule.discount_type == FeeType.PERCENTAGE.value:
            amount = running * rule.value / HUNDRED
        else:
            amount = rule.value
        if rule.max_discount_amount is not None:
            amount = min(amount, rule.max_discount_amount)
        return amount

    return DiscountStep(DiscountKind.PROMOTION, compute, rule.promotion_id)


def _loyalty_step(redemption: LoyaltyRedemption) -> DiscountStep:
    def compute(running: Decimal) -> Decimal:
        if redemption.points <= 0 or redemption.redemption_rate <= 0:
            return ZERO
        value = Decimal(redemption.points) / redemption.redemption_rate
        cap = running * redemption.max_redemption_percentage / HUNDRED
        return min(value, cap)

    return DiscountStep(DiscountKind.LOYALTY, compute)


def _membership_step(rule: MembershipRule) -> DiscountStep:
    return DiscountStep(
        DiscountKind.MEMBERSHIP,
        lambda running: running * rule.discount_percent / HUNDRED,
        rule.plan_id,
    )


def build_discount_steps(inputs: PricingInputs) -> Tuple[DiscountStep, ...]:
    steps = []
    if inputs.package is not None:
        steps.append(_package_step(inputs.package, to_decimal(inputs.services_subtotal)))
    if inputs.promotion is not None:
        steps.append(_promotion_step(inputs.promotion))
    if inputs.loyalty is not None:
        steps.append(_loyalty_step(inputs.loyalty))
    if inputs.membership is not None:
        steps.append(_membership_step(inputs.membership))
    return tuple(steps)


def compute_service_fee(rule: Optional[ServiceFeeRule], base: Decimal) -> Tuple[Decimal, Decimal]:
    """Return ``(percentage, amount)`` of the platform service fee on ``base``."""
    if rule is None:
        return ZERO, ZERO
    if rule.min_booking_amount is not None and base < rule.min_booking_amount:
        return ZERO, ZERO
    if rule.fee_type == FeeType.PERCENTAGE.value:
        amount = round_money(base * rule.percentage / HUNDRED)
        if rule.max_fee_amount is not None:
            amount = min(amount, round_money(rule.max_fee_amount))
        return rule.percentage, amount
    return ZERO, round_money(rule.fixed_amount)


def calculate_booking_price(inputs: PricingInputs) -> PricingBreakdown:
    """Compute every derived monetary field for a booking attempt."""
    items_subtotal = inputs.items_subtotal
    commission_base, discount_lines = apply_discount_cascade(
        items_subtotal, build_discount_steps(inputs)
    )

    travel_fee = round_money(max(to_decimal(inputs.travel_fee), ZERO))
    discounted_subtotal = commission_base + travel_fee
    tax_rate = to_decimal(inputs.tax_rate_percent)
    tax_amount = round_money(discounted_subtotal * tax_rate / HUNDRED)
    fee_percentage, fee_amount = compute_service_fee(inputs.service_fee, discounted_subtotal)
    tip_amount = round_money(max(to_decimal(inputs.tip_amount), ZERO))
    total = commission_base + travel_fee + tax_amount + fee_amount + tip_amount

    points_earned = int(
        (total * to_decimal(inputs.points_per_currency_unit)).to_integral_value(rounding=ROUND_FLOOR)
    )

    return PricingBreakdown(
        items_subtotal=items_subtotal,
        discounts=discount_lines,
        commission_base=commission_base,
        travel_fee=travel_fee,
        discounted_subtotal=discounted_subtotal,
        tax_rate_percent=tax_rate,
        tax_amount=tax_amount,
        service_fee_percentage=fee_percentage,
        service_fee_amount=fee_amount,
        service_fee_config_id=inputs.service_fee.config_id if inputs.service_fee else None,
        tip_amount=tip_amount,
        total_amount=round_money(total),
        loyalty_points_earned=max(points_earned, 0),
        loyalty_points_redeemed=inputs.loyalty.points if inputs.loyalty else 0,
    )


def compute_amount_to_collect(
    total_amount: Decimal,
    *,
    requires_deposit: bool,
    deposit_percentage: Decimal,
    payment_option: str,
) -> Decimal:
    """Deposit is the configured share of the total rounded up to a whole unit."""
    total = round_money(total_amount)
    if not requires_deposit or payment_option == PaymentOption.FULL.value:
        return total
    deposit = (total * to_decimal(deposit_percentage) / HUNDRED).to_integral_value(
        rounding=ROUND_CEILING
    )
    return min(round_money(deposit), total)


def compute_commission(commission_base: Decimal, snapshot: PlatformSettingsSnapshot) -> Decimal:
    if not snapshot.commission_enabled or snapshot.commission_percentage <= 0:
        return ZERO
    return round_money(to_decimal(commission_base) * snapshot.commission_percentage / HUNDRED)
