"""
订单路由模块（客户）

- 查询自己的订单列表（分页）
- 查询单个订单详情
- 认领游客订单（按 token 中的邮箱关联到当前用户）
- 按 PaymentIntent ID 查询订单（结账成功页）
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from storefront.api.deps import CurrentUser, OptionalUser, SessionDep
from storefront.api.errors import AppError, order_not_found
from storefront.api.schemas import (
    AdminOrderData,
    ApiEnvelope,
    ClaimOrdersData,
    OrderData,
    OrdersData,
    StatusHistoryData,
)
from storefront.crud import OrderRepository
from storefront.enums import PaymentProvider
from storefront.models import Order, OrderStatusHistory

router = APIRouter(prefix="/orders", tags=["orders"])


def to_order_data(order: Order) -> OrderData:
    """将订单模型转换为客户可见的响应模型"""
    return OrderData.model_validate(order, from_attributes=True)


def to_admin_order_data(order: Order, history: list[OrderStatusHistory] | None = None) -> AdminOrderData:
    data = AdminOrderData.model_validate(order, from_attributes=True)
    if history:
        data.history = [StatusHistoryData.model_validate(h, from_attributes=True) for h in history]
    return data


def _owns(order: Order, current_user: CurrentUser) -> bool:
    if order.user_id:
        return order.user_id == current_user.sub
    # 未认领的游客订单：邮箱一致即可查看
    return bool(current_user.email) and order.customer_email == current_user.email.strip().lower()


@router.get("", response_model=ApiEnvelope)
def list_orders(
    session: SessionDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    获取订单列表（分页）

    请求路径: GET /api/v1/orders?page=1&page_size=20
    """
    repo = OrderRepository(session)
    offset = (page - 1) * page_size
    rows = repo.list_for_user(current_user.sub, offset=offset, limit=page_size)
    count = repo.count_for_user(current_user.sub)
    return ApiEnvelope(data=OrdersData(data=[to_order_data(o) for o in rows], count=count))


@router.post("/claim", response_model=ApiEnvelope)
def claim_orders(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    认领游客订单

    把与 token 邮箱一致、尚未关联用户的订单关联到当前用户。

    请求路径: POST /api/v1/orders/claim
    """
    if not current_user.email:
        raise AppError(code=400301, message="Token has no email to claim orders with", status_code=400)
    linked = OrderRepository(session).link_guest_orders(
        email=current_user.email, user_id=current_user.sub
    )
    return ApiEnvelope(data=ClaimOrdersData(linked=linked))


@router.get("/{order_id}", response_model=ApiEnvelope)
def get_order(session: SessionDep, current_user: CurrentUser, order_id: str) -> ApiEnvelope:
    """
    获取订单详情（只能查看自己的订单，别人的订单一律按不存在处理）

    请求路径: GET /api/v1/orders/{order_id}
    """
    order = OrderRepository(session).get(order_id)
    if order is None or not _owns(order, current_user):
        raise order_not_found()
    return ApiEnvelope(data=to_order_data(order))


@router.get("/by-payment-intent/{payment_intent_id}", response_model=ApiEnvelope)
def get_order_by_payment_intent(
    session: SessionDep, current_user: OptionalUser, payment_intent_id: str
) -> ApiEnvelope:
    """
    按 PaymentIntent ID 查询订单（结账成功页使用）

    游客凭 PaymentIntent ID 查看自己刚下的订单；登录用户只能查看自己的订单。

    请求路径: GET /api/v1/orders/by-payment-intent/{payment_intent_id}
    """
    order = OrderRepository(session).find_by_provider_txn(PaymentProvider.card, payment_intent_id)
    if order is None or (current_user is not None and not _owns(order, current_user)):
        raise order_not_found()
    return ApiEnvelope(data=to_order_data(order))
