"""
优惠券应用服务

在纯计算引擎（coupon_engine）之上加入查询与核销：
- quote: 按券码查询并试算（不核销）
- redeem: 核销一次（带条件的 UPDATE，防止超发）
- apply_to_order: 管理员编辑订单时把优惠券应用到已有订单
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from storefront.api.errors import order_not_found
from storefront.core.config import settings
from storefront.crud import CouponRepository, OrderRepository
from storefront.enums import CouponRejectionReason
from storefront.models import Coupon, Order, normalize_code, utc_now
from storefront.services.coupon_engine import (
    BundlePricing,
    CouponContext,
    CouponEvaluation,
    cheapest_items_free,
    eligibility_only,
    evaluate_coupon,
    percentage_off,
)

logger = logging.getLogger(__name__)


def bundle_pricing_from_settings() -> BundlePricing:
    """根据 BUNDLE_PRICING_RULE 选择组合优惠的金额规则"""
    rule = settings.BUNDLE_PRICING_RULE
    if rule == "cheapest_free":
        return cheapest_items_free(settings.BUNDLE_FREE_ITEMS)
    if rule == "percentage":
        return percentage_off(settings.BUNDLE_PERCENTAGE)
    return eligibility_only


def expand_item_prices(items: Sequence[dict]) -> list[int]:
    """把订单商品按件展开成单价列表（quantity=2 的商品出现两次）"""
    prices: list[int] = []
    for item in items:
        prices.extend([int(item.get("unit_price") or 0)] * max(int(item.get("quantity") or 1), 1))
    return prices


@dataclass(frozen=True)
class CouponQuote:
    code: str
    evaluation: CouponEvaluation
    coupon: Coupon | None = None

    @property
    def accepted(self) -> bool:
        return self.evaluation.accepted


class CouponService:
    def __init__(self, session: Session, bundle_pricing: BundlePricing | None = None) -> None:
        self.session = session
        self.coupons = CouponRepository(session)
        self.orders = OrderRepository(session)
        self.bundle_pricing = bundle_pricing or bundle_pricing_from_settings()

    def quote(
        self,
        code: str,
        *,
        subtotal: int,
        item_count: int,
        now: datetime | None = None,
        item_prices: Sequence[int] = (),
    ) -> CouponQuote:
        """试算优惠券折扣；券码不存在时返回 not_found"""
        normalized = normalize_code(code)
        coupon = self.coupons.get_by_code(normalized)
        if coupon is None:
            return CouponQuote(
                code=normalized,
                evaluation=CouponEvaluation.rejected(CouponRejectionReason.not_found),
            )
        ctx = CouponContext(
            subtotal=subtotal,
            item_count=item_count,
            now=now or utc_now(),
            item_prices=tuple(item_prices),
        )
        return CouponQuote(
            code=normalized,
            evaluation=evaluate_coupon(coupon, ctx, self.bundle_pricing),
            coupon=coupon,
        )

    def redeem(self, coupon: Coupon) -> bool:
        """
        核销优惠券（usage_count + 1）

        Returns:
            是否核销成功；并发核销时超出 usage_limit 的一方返回 False
        """
        won = self.coupons.increment_usage(coupon.id)
        self.session.refresh(coupon)
        if not won:
            logger.info("Coupon %s usage limit reached during redeem", coupon.code)
        return won

    def release(self, coupon: Coupon) -> None:
        """退回一次核销"""
        self.coupons.release_usage(coupon.id)
        self.session.refresh(coupon)
        logger.info("Coupon %s redemption released", coupon.code)

    def apply_to_order(self, order_id: str, code: str, *, now: datetime | None = None) -> tuple[Order, CouponQuote]:
        """
        把优惠券应用到已有订单（管理员编辑订单）

        被拒绝时订单不变，调用方根据 quote.evaluation.reason 决定如何响应。
        接受后核销一次；订单已经使用同一张券时不重复核销，直接返回当前折扣。

        Raises:
            AppError: 订单不存在
        """
        order = self.orders.get(order_id)
        if order is None:
            raise order_not_found()

        normalized = normalize_code(code)
        if order.coupon_code == normalized:
            applied = CouponEvaluation(
                accepted=True,
                discount_amount=order.discount_amount,
                free_shipping=order.free_shipping,
            )
            return order, CouponQuote(code=normalized, evaluation=applied)

        prices = expand_item_prices(order.items)
        subtotal = order.subtotal or max(order.total - order.shipping_amount, 0)
        quote = self.quote(
            normalized,
            subtotal=subtotal,
            item_count=len(prices),
            now=now,
            item_prices=prices,
        )
        if not quote.accepted or quote.coupon is None:
            return order, quote

        if not self.redeem(quote.coupon):
            lost = CouponEvaluation.rejected(CouponRejectionReason.usage_limit_reached)
            return order, CouponQuote(code=quote.code, evaluation=lost, coupon=quote.coupon)

        evaluation = quote.evaluation
        updated = self.orders.update_fields(
            order.id,
            {
                "coupon_code": quote.code,
                "discount_amount": min(evaluation.discount_amount, order.total),
                "free_shipping": evaluation.free_shipping,
            },
        )
        return updated or order, quote
