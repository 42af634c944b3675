"""
优惠券路由模块（公开）

结账前试算优惠券，不核销。
"""
from fastapi import APIRouter

from storefront.api.deps import SessionDep
from storefront.api.schemas import ApiEnvelope, CouponQuoteData, CouponValidateRequest
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate", response_model=ApiEnvelope)
def validate_coupon(session: SessionDep, body: CouponValidateRequest) -> ApiEnvelope:
    """
    试算优惠券

    请求路径: POST /api/v1/coupons/validate

    被拒绝也返回 200，由 valid=false 和 reason 说明原因。
    """
    quote = CouponService(session).quote(
        body.code,
        subtotal=body.subtotal,
        item_count=body.item_count or len(body.item_prices),
        item_prices=body.item_prices,
    )
    evaluation = quote.evaluation
    return ApiEnvelope(
        data=CouponQuoteData(
            code=quote.code,
            valid=evaluation.accepted,
            discount_amount=evaluation.discount_amount,
            free_shipping=evaluation.free_shipping,
            reason=evaluation.reason,
        )
    )
