"""
结账服务

创建一笔银行卡（Stripe）待支付订单：
1. 计算小计与运费，试算优惠券（被拒绝则中止结账）
2. 核销优惠券
3. 创建 PaymentIntent
4. 通过对账器创建 pending 订单（与 Webhook 共用同一套状态机）
5. 写入优惠券信息

2 之后任一步失败都会退回这次核销。

支付成功后由 payment_intent.succeeded Webhook 把订单推进到 processing。
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from sqlmodel import Session

from storefront.api.errors import AppError, ConflictError
from storefront.core.config import settings
from storefront.crud import OrderRepository
from storefront.enums import OrderStatus, PaymentProvider
from storefront.integrations.stripe_client import PaymentIntentResult, StripeClient
from storefront.models import Order
from storefront.services.coupon_service import CouponService
from storefront.services.delta import OrderDelta, OrderItemData, PostalAddress
from storefront.services.notifications import Notifier
from storefront.services.reconciler import OrderReconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    payment_intent_id: str
    client_secret: str


class CheckoutService:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        stripe_client: StripeClient | None = None,
    ) -> None:
        self.session = session
        self.orders = OrderRepository(session)
        self.coupons = CouponService(session)
        self.reconciler = OrderReconciler(self.orders, notifier)
        self.stripe = stripe_client or StripeClient()

    def checkout(
        self,
        *,
        items: Sequence[OrderItemData],
        email: str,
        user_id: str | None = None,
        shipping_address: PostalAddress | None = None,
        billing_address: PostalAddress | None = None,
        shipping_amount: int | None = None,
        currency: str | None = None,
        coupon_code: str | None = None,
        notes: str | None = None,
    ) -> CheckoutResult:
        """
        结账

        Raises:
            AppError: 优惠券不可用(400401)、应付金额为 0(400402)、Stripe 调用失败
            ConflictError: 并发核销导致优惠券次数用尽(409402)
        """
        if not items:
            raise AppError(code=400403, message="Cart is empty", status_code=400)

        currency = (currency or settings.DEFAULT_CURRENCY).upper()
        subtotal = sum(item.unit_price * item.quantity for item in items)
        shipping = settings.DEFAULT_SHIPPING_AMOUNT if shipping_amount is None else shipping_amount

        quote = None
        discount = 0
        free_shipping = False
        if coupon_code:
            prices = [item.unit_price for item in items for _ in range(item.quantity)]
            quote = self.coupons.quote(
                coupon_code,
                subtotal=subtotal,
                item_count=len(prices),
                item_prices=prices,
            )
            if not quote.accepted:
                reason = quote.evaluation.reason
                raise AppError(
                    code=400401,
                    message=f"Coupon rejected: {reason.value if reason else 'unknown'}",
                    status_code=400,
                )
            discount = quote.evaluation.discount_amount
            free_shipping = quote.evaluation.free_shipping
            if free_shipping:
                shipping = 0

        total = subtotal + shipping
        amount_due = total - discount
        if amount_due <= 0:
            raise AppError(code=400402, message="Order amount must be positive", status_code=400)

        # 核销在创建 PaymentIntent 之前；后续任一步失败都退回核销
        redeemed = None
        if quote is not None and quote.coupon is not None:
            if not self.coupons.redeem(quote.coupon):
                raise ConflictError("Coupon usage limit reached", code=409402)
            redeemed = quote.coupon

        try:
            order, intent = self._place_order(
                total=total,
                subtotal=subtotal,
                shipping=shipping,
                amount_due=amount_due,
                currency=currency,
                email=email,
                user_id=user_id,
                items=items,
                shipping_address=shipping_address,
                billing_address=billing_address,
            )
            fields: dict = {}
            if quote is not None:
                fields.update(coupon_code=quote.code, discount_amount=discount, free_shipping=free_shipping)
            if notes:
                fields["notes"] = notes
            order = self.orders.update_fields(order.id, fields) or order
        except Exception:
            if redeemed is not None:
                self.session.rollback()
                self.coupons.release(redeemed)
            raise

        logger.info(
            "Checkout created order %s (intent %s, amount due %s %s)",
            order.id,
            intent.intent_id,
            amount_due,
            currency,
        )
        return CheckoutResult(
            order=order,
            payment_intent_id=intent.intent_id,
            client_secret=intent.client_secret,
        )

    def _place_order(
        self,
        *,
        total: int,
        subtotal: int,
        shipping: int,
        amount_due: int,
        currency: str,
        email: str,
        user_id: str | None,
        items: Sequence[OrderItemData],
        shipping_address: PostalAddress | None,
        billing_address: PostalAddress | None,
    ) -> tuple[Order, PaymentIntentResult]:
        """创建 PaymentIntent，并通过对账器落一笔 pending 订单"""
        metadata = {"email": email}
        if user_id:
            metadata["userId"] = user_id
        intent = self.stripe.create_payment_intent(
            amount=amount_due,
            currency=currency,
            receipt_email=email,
            metadata=metadata,
            idempotency_key=uuid.uuid4().hex,
        )

        delta = OrderDelta(
            provider=PaymentProvider.card,
            provider_transaction_id=intent.intent_id,
            status=OrderStatus.pending,
            raw_status="checkout",
            total=total,
            subtotal=subtotal,
            shipping_amount=shipping,
            currency=currency,
            customer_email=email,
            user_id=user_id,
            items=list(items),
            shipping_address=shipping_address,
            billing_address=billing_address,
            note="checkout",
        )
        result = self.reconciler.reconcile(delta)
        if result.order is None:
            raise AppError(code=500301, message="Order was not created", status_code=500)
        return result.order, intent
