"""
结账路由模块

请求路径: POST /api/v1/checkout
"""
from __future__ import annotations

from fastapi import APIRouter

from storefront.api.deps import NotifierDep, OptionalUser, SessionDep, StripeClientDep
from storefront.api.routes.orders import to_order_data
from storefront.api.schemas import ApiEnvelope, CheckoutData, CheckoutRequest
from storefront.services.checkout import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=ApiEnvelope)
def checkout(
    session: SessionDep,
    notifier: NotifierDep,
    stripe_client: StripeClientDep,
    current_user: OptionalUser,
    body: CheckoutRequest,
) -> ApiEnvelope:
    """
    创建待支付订单并返回 PaymentIntent 的 client_secret

    登录用户的订单关联到用户 ID；游客订单之后可通过 /orders/claim 认领。
    """
    result = CheckoutService(session, notifier, stripe_client).checkout(
        items=body.items,
        email=body.email,
        user_id=current_user.sub if current_user else None,
        shipping_address=body.shipping_address,
        billing_address=body.billing_address,
        shipping_amount=body.shipping_amount,
        currency=body.currency,
        coupon_code=body.coupon_code,
        notes=body.notes,
    )
    return ApiEnvelope(
        data=CheckoutData(
            order=to_order_data(result.order),
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret,
        )
    )
