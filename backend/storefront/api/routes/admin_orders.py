"""
订单管理路由模块（管理员）

- 订单列表（可按状态筛选）/ 详情（含状态历史）
- 编辑非状态字段
- 修改状态：与 Webhook 走同一个对账器和状态机，通知也由对账器发出
- 应用优惠券
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from storefront.api.deps import CurrentAdmin, NotifierDep, SessionDep
from storefront.api.errors import AppError, ConflictError, order_not_found
from storefront.api.routes.orders import to_admin_order_data
from storefront.api.schemas import (
    AdminOrdersData,
    AdminOrderStatusRequest,
    AdminOrderUpdateRequest,
    ApiEnvelope,
    ApplyCouponRequest,
)
from storefront.crud import OrderRepository
from storefront.enums import OrderStatus, PaymentProvider
from storefront.services.coupon_service import CouponService
from storefront.services.delta import OrderDelta
from storefront.services.reconciler import OrderReconciler, can_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get("", response_model=ApiEnvelope)
def list_orders(
    session: SessionDep,
    _: CurrentAdmin,
    status: OrderStatus | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    repo = OrderRepository(session)
    rows = repo.list_all(offset=(page - 1) * page_size, limit=page_size, status=status)
    return ApiEnvelope(
        data=AdminOrdersData(
            data=[to_admin_order_data(o) for o in rows],
            count=repo.count(status=status),
        )
    )


@router.get("/{order_id}", response_model=ApiEnvelope)
def get_order(session: SessionDep, _: CurrentAdmin, order_id: str) -> ApiEnvelope:
    repo = OrderRepository(session)
    order = repo.get(order_id)
    if order is None:
        raise order_not_found()
    return ApiEnvelope(data=to_admin_order_data(order, repo.history(order.id)))


@router.patch("/{order_id}", response_model=ApiEnvelope)
def update_order(
    session: SessionDep, _: CurrentAdmin, order_id: str, body: AdminOrderUpdateRequest
) -> ApiEnvelope:
    """
    编辑订单的非状态字段（只更新请求中出现的字段）

    请求路径: PATCH /api/v1/admin/orders/{order_id}
    """
    fields = body.model_dump(exclude_unset=True)
    # 这些列不可为空，显式传 null 视为不修改
    for name in ("customer_email", "shipping_address", "billing_address"):
        if fields.get(name) is None:
            fields.pop(name, None)
    repo = OrderRepository(session)
    order = repo.update_fields(order_id, fields)
    if order is None:
        raise order_not_found()
    return ApiEnvelope(data=to_admin_order_data(order, repo.history(order.id)))


@router.post("/{order_id}/status", response_model=ApiEnvelope)
def change_status(
    session: SessionDep,
    admin: CurrentAdmin,
    notifier: NotifierDep,
    order_id: str,
    body: AdminOrderStatusRequest,
) -> ApiEnvelope:
    """
    修改订单状态

    请求路径: POST /api/v1/admin/orders/{order_id}/status

    Raises:
        ConflictError: 状态机不允许该流转（409301）
    """
    repo = OrderRepository(session)
    order = repo.get(order_id)
    if order is None:
        raise order_not_found()

    current = OrderStatus(order.status)
    if body.status is not current and not can_transition(current, body.status):
        raise ConflictError(
            f"Cannot change status from {current.value} to {body.status.value}", code=409301
        )

    delta = OrderDelta(
        provider=PaymentProvider(order.provider),
        provider_transaction_id=order.provider_transaction_id,
        status=body.status,
        tracking_number=body.tracking_number,
        note=body.note or "admin",
    )
    result = OrderReconciler(repo, notifier).reconcile(delta)
    if result.order is None:
        raise AppError(code=500302, message="Order disappeared during update", status_code=500)
    logger.info("Admin %s set order %s status to %s", admin.sub, order_id, body.status.value)
    return ApiEnvelope(data=to_admin_order_data(result.order, repo.history(order_id)))


@router.post("/{order_id}/coupon", response_model=ApiEnvelope)
def apply_coupon(
    session: SessionDep, _: CurrentAdmin, order_id: str, body: ApplyCouponRequest
) -> ApiEnvelope:
    """
    把优惠券应用到订单

    请求路径: POST /api/v1/admin/orders/{order_id}/coupon

    Raises:
        AppError: 优惠券不可用（400401）
    """
    order, quote = CouponService(session).apply_to_order(order_id, body.code)
    if not quote.accepted:
        reason = quote.evaluation.reason
        raise AppError(
            code=400401,
            message=f"Coupon rejected: {reason.value if reason else 'unknown'}",
            status_code=400,
        )
    return ApiEnvelope(data=to_admin_order_data(order))
