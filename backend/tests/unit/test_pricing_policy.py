# backend/tests/unit/test_pricing_policy.py
"""Tests for the pure booking pricing policy."""

from decimal import Decimal

import pytest

from beautonomi.services.pricing_policy import (
    DiscountKind,
    DiscountStep,
    LoyaltyRedemption,
    MembershipRule,
    PackageRule,
    PlatformSettingsSnapshot,
    PricingInputs,
    PricingRuleViolation,
    PromotionRule,
    ServiceFeeRule,
    apply_discount_cascade,
    calculate_booking_price,
    compute_amount_to_collect,
    compute_commission,
    compute_service_fee,
)

D = Decimal


def _promo(**overrides):
    data = {"promotion_id": "promo-1", "code": "SPRING", "discount_type": "percentage", "value": D("10")}
    data.update(overrides)
    return PromotionRule(**data)


class TestCalculateBookingPrice:
    def test_service_fee_on_plain_booking(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1000"),
                service_fee=ServiceFeeRule(fee_type="percentage", percentage=D("5")),
            )
        )

        assert result.items_subtotal == D("1000.00")
        assert result.commission_base == D("1000.00")
        assert result.service_fee_amount == D("50.00")
        assert result.tax_amount == D("0.00")
        assert result.total_amount == D("1050.00")
        assert result.discounts == ()

    def test_full_cascade_runs_in_fixed_order(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1000"),
                package=PackageRule(package_id="pkg-1", price=D("800")),
                promotion=_promo(),
                loyalty=LoyaltyRedemption(
                    points=500, redemption_rate=D("100"), max_redemption_percentage=D("50")
                ),
                membership=MembershipRule(plan_id="gold", discount_percent=D("10")),
            )
        )

        assert [line.kind for line in result.discounts] == [
            DiscountKind.PACKAGE,
            DiscountKind.PROMOTION,
            DiscountKind.LOYALTY,
            DiscountKind.MEMBERSHIP,
        ]
        assert result.discount(DiscountKind.PACKAGE) == D("200.00")
        assert result.discount(DiscountKind.PROMOTION) == D("80.00")
        assert result.discount(DiscountKind.LOYALTY) == D("5.00")
        assert result.discount(DiscountKind.MEMBERSHIP) == D("71.50")
        assert result.commission_base == D("643.50")
        assert result.discount_total == D("356.50")
        assert result.loyalty_points_redeemed == 500

    def test_travel_fee_is_never_discounted_but_is_taxed(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1000"),
                travel_fee=D("120"),
                tax_rate_percent=D("15"),
                membership=MembershipRule(plan_id="gold", discount_percent=D("10")),
            )
        )

        assert result.commission_base == D("900.00")
        assert result.discounted_subtotal == D("1020.00")
        assert result.tax_amount == D("153.00")
        assert result.total_amount == D("1173.00")

    def test_tax_rounds_half_up(self):
        result = calculate_booking_price(
            PricingInputs(services_subtotal=D("643.50"), tax_rate_percent=D("15"))
        )

        assert result.tax_amount == D("96.53")
        assert result.total_amount == D("740.03")

    def test_fixed_promotion_is_capped_at_running_subtotal(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("300"),
                promotion=_promo(discount_type="fixed", value=D("500")),
                membership=MembershipRule(plan_id="gold", discount_percent=D("10")),
            )
        )

        assert result.discount(DiscountKind.PROMOTION) == D("300.00")
        assert result.discount(DiscountKind.MEMBERSHIP) == D("0.00")
        assert result.commission_base == D("0.00")
        assert result.total_amount == D("0.00")

    def test_promotion_max_discount_cap(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1000"),
                promotion=_promo(value=D("50"), max_discount_amount=D("100")),
            )
        )

        assert result.discount(DiscountKind.PROMOTION) == D("100.00")

    def test_promotion_minimum_is_checked_against_running_subtotal(self):
        inputs = PricingInputs(
            services_subtotal=D("1000"),
            package=PackageRule(package_id="pkg-1", price=D("400")),
            promotion=_promo(min_purchase_amount=D("500")),
        )

        with pytest.raises(PricingRuleViolation) as exc_info:
            calculate_booking_price(inputs)

        assert exc_info.value.code == "PROMO_MIN_PURCHASE"

    def test_loyalty_capped_by_max_redemption_percentage(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("100"),
                loyalty=LoyaltyRedemption(
                    points=10000, redemption_rate=D("10"), max_redemption_percentage=D("20")
                ),
            )
        )

        assert result.discount(DiscountKind.LOYALTY) == D("20.00")

    def test_package_percentage_applies_to_services_only(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1000"),
                addons_subtotal=D("50"),
                products_subtotal=D("160"),
                package=PackageRule(package_id="pkg-1", percentage=D("20")),
            )
        )

        assert result.items_subtotal == D("1210.00")
        assert result.discount(DiscountKind.PACKAGE) == D("200.00")
        assert result.commission_base == D("1010.00")

    def test_loyalty_points_earned_are_floored(self):
        result = calculate_booking_price(
            PricingInputs(
                services_subtotal=D("1050.55"),
                points_per_currency_unit=D("0.1"),
            )
        )

        assert result.loyalty_points_earned == 105

    def test_tip_passes_through_to_total(self):
        result = calculate_booking_price(
            PricingInputs(services_subtotal=D("500"), tip_amount=D("40"))
        )

        assert result.commission_base == D("500.00")
        assert result.tip_amount == D("40.00")
        assert result.total_amount == D("540.00")


class TestDiscountCascade:
    def test_rejects_out_of_order_steps(self):
        steps = [
            DiscountStep(DiscountKind.MEMBERSHIP, lambda running: D("1")),
            DiscountStep(DiscountKind.PROMOTION, lambda running: D("1")),
        ]

        with pytest.raises(ValueError):
            apply_discount_cascade(D("100"), steps)

    def test_rejects_duplicate_kinds(self):
        steps = [
            DiscountStep(DiscountKind.PROMOTION, lambda running: D("1")),
            DiscountStep(DiscountKind.PROMOTION, lambda running: D("1")),
        ]

        with pytest.raises(ValueError):
            apply_discount_cascade(D("100"), steps)

    def test_running_subtotal_never_increases_or_goes_negative(self):
        steps = [
            DiscountStep(DiscountKind.PACKAGE, lambda running: D("-50")),
            DiscountStep(DiscountKind.PROMOTION, lambda running: running * 2),
            DiscountStep(DiscountKind.MEMBERSHIP, lambda running: D("10")),
        ]

        final, lines = apply_discount_cascade(D("100"), steps)

        assert final == D("0.00")
        for line in lines:
            assert line.amount >= 0
            assert line.subtotal_after <= line.subtotal_before
            assert line.subtotal_after == line.subtotal_before - line.amount
        assert lines[0].amount == D("0.00")
        assert lines[1].amount == D("100.00")


class TestServiceFee:
    def test_no_rule_means_no_fee(self):
        assert compute_service_fee(None, D("1000")) == (D("0"), D("0"))

    def test_below_minimum_booking_amount(self):
        rule = ServiceFeeRule(fee_type="percentage", percentage=D("5"), min_booking_amount=D("200"))
        assert compute_service_fee(rule, D("100")) == (D("0"), D("0"))

    def test_percentage_capped(self):
        rule = ServiceFeeRule(fee_type="percentage", percentage=D("5"), max_fee_amount=D("100"))
        percentage, amount = compute_service_fee(rule, D("10000"))
        assert percentage == D("5")
        assert amount == D("100.00")

    def test_fixed_fee(self):
        rule = ServiceFeeRule(fee_type="fixed", fixed_amount=D("25"))
        assert compute_service_fee(rule, D("10000")) == (D("0"), D("25.00"))


class TestAmountToCollect:
    def test_deposit_is_thirty_percent_of_total(self):
        amount = compute_amount_to_collect(
            D("1000"), requires_deposit=True, deposit_percentage=D("30"), payment_option="deposit"
        )
        assert amount == D("300.00")

    def test_deposit_rounds_up_to_whole_unit(self):
        amount = compute_amount_to_collect(
            D("1000.50"), requires_deposit=True, deposit_percentage=D("33"), payment_option="deposit"
        )
        assert amount == D("331.00")

    def test_full_option_collects_total(self):
        amount = compute_amount_to_collect(
            D("1000"), requires_deposit=True, deposit_percentage=D("30"), payment_option="full"
        )
        assert amount == D("1000.00")

    def test_provider_without_deposit_collects_total(self):
        amount = compute_amount_to_collect(
            D("1000"), requires_deposit=False, deposit_percentage=D("30"), payment_option="deposit"
        )
        assert amount == D("1000.00")

    def test_deposit_never_exceeds_total(self):
        amount = compute_amount_to_collect(
            D("10.40"), requires_deposit=True, deposit_percentage=D("100"), payment_option="deposit"
        )
        assert amount == D("10.40")


class TestCommission:
    def test_commission_on_base(self):
        snapshot = PlatformSettingsSnapshot(commission_enabled=True, commission_percentage=D("15"))
        assert compute_commission(D("1000"), snapshot) == D("150.00")

    def test_disabled_commission_is_zero(self):
        snapshot = PlatformSettingsSnapshot(commission_enabled=False, commission_percentage=D("15"))
        assert compute_commission(D("1000"), snapshot) == D("0")

    def test_snapshot_defaults_commission_to_enabled(self):
        snapshot = PlatformSettingsSnapshot.from_document(
            {"payouts": {"platform_commission_percentage": "12.5"}}
        )
        assert snapshot.commission_enabled is True
        assert snapshot.commission_percentage == D("12.5")

    def test_snapshot_respects_explicit_disable(self):
        snapshot = PlatformSettingsSnapshot.from_document(
            {"payouts": {"commission_enabled": False, "platform_commission_percentage": 15}}
        )
        assert snapshot.commission_enabled is False

    def test_snapshot_reads_fee_and_tax_sections(self):
        snapshot = PlatformSettingsSnapshot.from_document(
            {
                "fees": {
                    "service_fee_type": "percentage",
                    "service_fee_percentage": 5,
                    "service_fee_max_amount": 200,
                },
                "taxes": {"default_tax_rate_percent": 15},
            }
        )
        assert snapshot.default_tax_rate_percent == D("15")
        assert snapshot.service_fee is not None
        assert snapshot.service_fee.percentage == D("5")
        assert snapshot.service_fee.max_fee_amount == D("200")
