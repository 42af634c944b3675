from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.enums import CouponRejectionReason, CouponType
from storefront.models import Coupon
from storefront.services.coupon_engine import (
    CouponContext,
    cheapest_items_free,
    eligibility_only,
    evaluate_coupon,
    percentage_off,
    round_half_up,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _coupon(coupon_type: CouponType, value: str | int, **kwargs) -> Coupon:
    kwargs.setdefault("valid_from", NOW - timedelta(days=30))
    return Coupon(code="TEST", type=coupon_type, value=Decimal(str(value)), **kwargs)


def _ctx(subtotal: int, item_count: int = 1, item_prices=()) -> CouponContext:
    return CouponContext(subtotal=subtotal, item_count=item_count, now=NOW, item_prices=item_prices)


def test_percentage_full_discount_equals_subtotal():
    result = evaluate_coupon(_coupon(CouponType.percentage, 100), _ctx(2599))
    assert result.accepted
    assert result.discount_amount == 2599


@pytest.mark.parametrize(
    ("value", "subtotal", "expected"),
    [("15", 999, 150), ("12.5", 100, 13), ("10", 1005, 101), ("33", 1, 0)],
)
def test_percentage_rounds_half_up(value, subtotal, expected):
    result = evaluate_coupon(_coupon(CouponType.percentage, value), _ctx(subtotal))
    assert result.discount_amount == expected


def test_fixed_amount_capped_at_subtotal():
    result = evaluate_coupon(_coupon(CouponType.fixed_amount, 5000), _ctx(3000))
    assert result.accepted
    assert result.discount_amount == 3000


def test_fixed_amount_below_subtotal():
    assert evaluate_coupon(_coupon(CouponType.fixed_amount, 500), _ctx(3000)).discount_amount == 500


def test_free_shipping_reports_flag_only():
    result = evaluate_coupon(_coupon(CouponType.free_shipping, 0), _ctx(3000))
    assert result.accepted
    assert result.free_shipping is True
    assert result.discount_amount == 0


@pytest.mark.parametrize("is_active", [True, False])
def test_expired_coupon_rejected_regardless_of_active_flag(is_active):
    coupon = _coupon(
        CouponType.percentage, 10, is_active=is_active, valid_until=NOW - timedelta(seconds=1)
    )
    result = evaluate_coupon(coupon, _ctx(1000))
    assert not result.accepted
    assert result.reason in {CouponRejectionReason.expired, CouponRejectionReason.inactive}


def test_inactive_checked_first():
    coupon = _coupon(CouponType.percentage, 10, is_active=False)
    assert evaluate_coupon(coupon, _ctx(1000)).reason is CouponRejectionReason.inactive


def test_expired_reason():
    coupon = _coupon(CouponType.percentage, 10, valid_until=NOW - timedelta(days=1))
    assert evaluate_coupon(coupon, _ctx(1000)).reason is CouponRejectionReason.expired


def test_not_yet_valid():
    coupon = _coupon(CouponType.percentage, 10, valid_from=NOW + timedelta(hours=1))
    assert evaluate_coupon(coupon, _ctx(1000)).reason is CouponRejectionReason.not_yet_valid


def test_naive_validity_dates_are_treated_as_utc():
    coupon = _coupon(
        CouponType.percentage,
        10,
        valid_from=datetime(2024, 1, 1),
        valid_until=datetime(2024, 12, 31),
    )
    assert evaluate_coupon(coupon, _ctx(1000)).accepted


def test_usage_limit_reached():
    coupon = _coupon(CouponType.fixed_amount, 100, usage_limit=1, usage_count=1)
    result = evaluate_coupon(coupon, _ctx(1000))
    assert not result.accepted
    assert result.reason is CouponRejectionReason.usage_limit_reached
    assert result.discount_amount == 0


def test_minimum_not_met():
    coupon = _coupon(CouponType.fixed_amount, 100, minimum_order_amount=5000)
    assert evaluate_coupon(coupon, _ctx(4999)).reason is CouponRejectionReason.minimum_not_met
    assert evaluate_coupon(coupon, _ctx(5000)).accepted


def test_maximum_discount_cap():
    coupon = _coupon(CouponType.percentage, 50, maximum_discount_amount=2000)
    assert evaluate_coupon(coupon, _ctx(10000)).discount_amount == 2000


def test_bundle_requires_item_count():
    coupon = _coupon(CouponType.bundle_deal, 3)
    result = evaluate_coupon(coupon, _ctx(1500, item_count=2, item_prices=(500, 1000)))
    assert result.reason is CouponRejectionReason.bundle_not_eligible


def test_bundle_without_pricing_is_eligibility_only():
    coupon = _coupon(CouponType.bundle_deal, 2)
    result = evaluate_coupon(coupon, _ctx(1500, item_count=2, item_prices=(500, 1000)))
    assert result.accepted
    assert result.discount_amount == 0


def test_bundle_cheapest_item_free():
    coupon = _coupon(CouponType.bundle_deal, 3)
    ctx = _ctx(1600, item_count=3, item_prices=(500, 300, 800))
    assert evaluate_coupon(coupon, ctx, cheapest_items_free()).discount_amount == 300
    assert evaluate_coupon(coupon, ctx, cheapest_items_free(2)).discount_amount == 800


def test_bundle_percentage_pricing_and_cap():
    coupon = _coupon(CouponType.bundle_deal, 2, maximum_discount_amount=100)
    ctx = _ctx(1600, item_count=2, item_prices=(800, 800))
    assert evaluate_coupon(coupon, ctx, percentage_off(10)).discount_amount == 100
    assert eligibility_only(ctx) == 0


def test_discount_never_exceeds_subtotal():
    coupon = _coupon(CouponType.bundle_deal, 2)
    ctx = _ctx(100, item_count=2, item_prices=(5000, 5000))
    assert evaluate_coupon(coupon, ctx, cheapest_items_free(2)).discount_amount == 100


def test_round_half_up():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("2.49")) == 2
