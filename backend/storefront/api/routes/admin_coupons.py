"""
优惠券管理路由模块（管理员）

优惠券不提供删除接口，停用请把 is_active 改为 false。
"""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Query

from storefront.api.deps import CurrentAdmin, SessionDep
from storefront.api.errors import AppError, coupon_not_found
from storefront.api.schemas import (
    ApiEnvelope,
    CouponCreateRequest,
    CouponData,
    CouponsData,
    CouponUpdateRequest,
    validate_coupon_rules,
)
from storefront.crud import CouponRepository
from storefront.enums import CouponType
from storefront.models import Coupon, ensure_utc, utc_now

router = APIRouter(prefix="/admin/coupons", tags=["admin"])


def _to_coupon_data(coupon: Coupon) -> CouponData:
    return CouponData.model_validate(coupon, from_attributes=True)


@router.get("", response_model=ApiEnvelope)
def list_coupons(
    session: SessionDep,
    _: CurrentAdmin,
    is_active: bool | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
) -> ApiEnvelope:
    repo = CouponRepository(session)
    rows = repo.list_all(is_active=is_active, offset=(page - 1) * page_size, limit=page_size)
    return ApiEnvelope(
        data=CouponsData(data=[_to_coupon_data(c) for c in rows], count=repo.count(is_active=is_active))
    )


@router.post("", response_model=ApiEnvelope)
def create_coupon(session: SessionDep, _: CurrentAdmin, body: CouponCreateRequest) -> ApiEnvelope:
    """
    创建优惠券

    请求路径: POST /api/v1/admin/coupons

    Raises:
        ConflictError: 券码已存在（409401）
    """
    coupon = Coupon(
        code=body.code,
        name=body.name or "",
        description=body.description,
        type=body.type,
        value=body.value,
        minimum_order_amount=body.minimum_order_amount,
        maximum_discount_amount=body.maximum_discount_amount,
        usage_limit=body.usage_limit,
        is_active=body.is_active,
        valid_from=body.valid_from or utc_now(),
        valid_until=body.valid_until,
    )
    return ApiEnvelope(data=_to_coupon_data(CouponRepository(session).create(coupon)))


@router.get("/{coupon_id}", response_model=ApiEnvelope)
def get_coupon(session: SessionDep, _: CurrentAdmin, coupon_id: str) -> ApiEnvelope:
    coupon = CouponRepository(session).get(coupon_id)
    if coupon is None:
        raise coupon_not_found()
    return ApiEnvelope(data=_to_coupon_data(coupon))


@router.patch("/{coupon_id}", response_model=ApiEnvelope)
def update_coupon(
    session: SessionDep, _: CurrentAdmin, coupon_id: str, body: CouponUpdateRequest
) -> ApiEnvelope:
    """
    部分更新优惠券

    类型和面值合并后重新校验，例如把类型改为 percentage 时面值必须在 (0, 100] 内。

    Raises:
        AppError: 合并后的规则不合法（400402）
    """
    repo = CouponRepository(session)
    coupon = repo.get(coupon_id)
    if coupon is None:
        raise coupon_not_found()

    fields = body.model_dump(exclude_unset=True)
    # 这些列不可为空，显式传 null 视为不修改
    for name in ("name", "type", "value", "is_active", "valid_from"):
        if fields.get(name) is None:
            fields.pop(name, None)
    coupon_type = CouponType(fields.get("type") or coupon.type)
    value = fields.get("value")
    if value is None:
        value = coupon.value
    try:
        fields["value"] = validate_coupon_rules(coupon_type, Decimal(str(value)))
    except ValueError as e:
        raise AppError(code=400402, message=str(e), status_code=400)

    valid_from = fields.get("valid_from") or coupon.valid_from
    valid_until = fields["valid_until"] if "valid_until" in fields else coupon.valid_until
    if valid_until is not None and ensure_utc(valid_until) <= ensure_utc(valid_from):
        raise AppError(code=400402, message="valid_until must be after valid_from", status_code=400)

    return ApiEnvelope(data=_to_coupon_data(repo.update(coupon, fields)))
