"""
优惠券计算引擎

纯函数：校验优惠券在当前订单上下文中是否可用，并计算折扣金额。
不做任何 I/O，也不修改 usage_count（核销由调用方在确认后完成）。

校验顺序：
1. 未启用 → inactive
2. 未到生效时间 → not_yet_valid；已过期 → expired
3. 使用次数已达上限 → usage_limit_reached
4. 小计低于最低订单金额 → minimum_not_met
5. 按类型计算折扣：
   - percentage: subtotal * value / 100，四舍五入（half-up）到最小货币单位
   - fixed_amount: value，不超过 subtotal
   - free_shipping: 折扣为 0，只报告 free_shipping=True（运费由调用方清零）
   - bundle_deal: 商品件数 >= value 才可用，金额由可配置的 BundlePricing 决定
6. 有 maximum_discount_amount 时按其封顶
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from storefront.enums import CouponRejectionReason, CouponType
from storefront.models import Coupon, ensure_utc


@dataclass(frozen=True)
class CouponContext:
    """
    订单上下文

    subtotal: 折扣前商品小计（最小货币单位）
    item_count: 商品总件数
    now: 当前时间
    item_prices: 每件商品的单价（按件展开），组合优惠计算金额时使用
    """
    subtotal: int
    item_count: int
    now: datetime
    item_prices: Sequence[int] = field(default_factory=tuple)


@dataclass(frozen=True)
class CouponEvaluation:
    """优惠券计算结果；被拒绝时 accepted=False 且 reason 不为空"""
    accepted: bool
    discount_amount: int = 0
    free_shipping: bool = False
    reason: CouponRejectionReason | None = None

    @classmethod
    def rejected(cls, reason: CouponRejectionReason) -> CouponEvaluation:
        return cls(accepted=False, reason=reason)


# 组合优惠金额计算规则：输入订单上下文，返回折扣金额（最小货币单位）
BundlePricing = Callable[[CouponContext], int]


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cheapest_items_free(free_items: int = 1) -> BundlePricing:
    """买 N 送最便宜的 free_items 件"""

    def _pricing(ctx: CouponContext) -> int:
        return sum(sorted(ctx.item_prices)[:free_items])

    return _pricing


def percentage_off(percent: int | Decimal) -> BundlePricing:
    """满足件数条件后按小计打折"""

    def _pricing(ctx: CouponContext) -> int:
        return round_half_up(Decimal(ctx.subtotal) * Decimal(str(percent)) / Decimal(100))

    return _pricing


def eligibility_only(_: CouponContext) -> int:
    return 0


def evaluate_coupon(
    coupon: Coupon,
    ctx: CouponContext,
    bundle_pricing: BundlePricing | None = None,
) -> CouponEvaluation:
    """
    校验优惠券并计算折扣

    Args:
        coupon: 优惠券
        ctx: 订单上下文
        bundle_pricing: 组合优惠的金额规则（为空时只校验资格，金额为 0）

    Returns:
        CouponEvaluation: 计算结果（被拒绝时带原因，不抛异常）
    """
    if not coupon.is_active:
        return CouponEvaluation.rejected(CouponRejectionReason.inactive)

    now = ensure_utc(ctx.now)
    if now < ensure_utc(coupon.valid_from):
        return CouponEvaluation.rejected(CouponRejectionReason.not_yet_valid)
    if coupon.valid_until is not None and now > ensure_utc(coupon.valid_until):
        return CouponEvaluation.rejected(CouponRejectionReason.expired)

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return CouponEvaluation.rejected(CouponRejectionReason.usage_limit_reached)

    if coupon.minimum_order_amount is not None and ctx.subtotal < coupon.minimum_order_amount:
        return CouponEvaluation.rejected(CouponRejectionReason.minimum_not_met)

    value = Decimal(str(coupon.value))
    free_shipping = False
    coupon_type = CouponType(coupon.type)

    if coupon_type is CouponType.percentage:
        amount = round_half_up(Decimal(ctx.subtotal) * value / Decimal(100))
    elif coupon_type is CouponType.fixed_amount:
        amount = min(int(value), ctx.subtotal)
    elif coupon_type is CouponType.free_shipping:
        amount = 0
        free_shipping = True
    else:
        if ctx.item_count < value:
            return CouponEvaluation.rejected(CouponRejectionReason.bundle_not_eligible)
        amount = (bundle_pricing or eligibility_only)(ctx)

    if coupon.maximum_discount_amount is not None:
        amount = min(amount, coupon.maximum_discount_amount)
    amount = max(0, min(amount, ctx.subtotal))

    return CouponEvaluation(accepted=True, discount_amount=amount, free_shipping=free_shipping)
