"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
这些模型不是数据库表，只用于 API 数据交换。
金额字段一律为最小货币单位（整数，如 1999 表示 19.99）。
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from storefront.enums import (
    CouponRejectionReason,
    CouponType,
    OrderStatus,
    PaymentProvider,
)
from storefront.models.base import ensure_utc
from storefront.services.delta import OrderItemData, PostalAddress

# ============================================================
# 通用响应模型
# ============================================================


class TokenPayload(BaseModel):
    """
    JWT Token 载荷模型

    sub 为用户 ID；email 用于认领游客订单；role 区分普通用户和管理员。
    """
    sub: str | None = None
    email: str | None = None
    role: str = "customer"


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息
    - data: 业务数据（错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 404301, "message": "Order not found", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 订单
# ============================================================


class OrderData(BaseModel):
    """订单响应模型（客户可见字段）"""
    id: str
    provider: PaymentProvider
    status: OrderStatus
    customer_email: str
    total: int  # 折扣前总额
    subtotal: int
    shipping_amount: int
    discount_amount: int
    amount_due: int  # 实付金额
    currency: str
    items: list[dict[str, Any]]
    shipping_address: dict[str, str]
    billing_address: dict[str, str]
    coupon_code: str | None = None
    free_shipping: bool = False
    tracking_number: str | None = None
    notes: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class StatusHistoryData(BaseModel):
    status: OrderStatus
    raw_status: str | None = None
    note: str | None = None
    notify_customer: bool = False
    created_at: datetime


class AdminOrderData(OrderData):
    """订单响应模型（管理员）"""
    provider_transaction_id: str
    user_id: str | None = None
    last_raw_status: str | None = None
    admin_notes: str | None = None
    history: list[StatusHistoryData] = Field(default_factory=list)


class OrdersData(BaseModel):
    data: list[OrderData]
    count: int


class AdminOrdersData(BaseModel):
    data: list[AdminOrderData]
    count: int


class ClaimOrdersData(BaseModel):
    linked: int  # 本次认领的游客订单数量


class AdminOrderUpdateRequest(BaseModel):
    """
    管理员编辑订单请求（非状态字段）

    只更新请求中出现的字段；状态修改走 /status 接口。
    """
    customer_email: str | None = Field(default=None, max_length=255)
    tracking_number: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    admin_notes: str | None = None
    shipping_address: PostalAddress | None = None
    billing_address: PostalAddress | None = None

    @field_validator("customer_email")
    @classmethod
    def _normalize_email(cls, v: str | None) -> str | None:
        return v.strip().lower() if v is not None else None


class AdminOrderStatusRequest(BaseModel):
    status: OrderStatus
    tracking_number: str | None = Field(default=None, max_length=128)
    note: str | None = Field(default=None, max_length=255)


class ApplyCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


# ============================================================
# 结账
# ============================================================


class CheckoutRequest(BaseModel):
    """
    结账请求模型

    游客也可以结账（不带 token）；登录用户的订单会关联到用户 ID。
    """
    items: list[OrderItemData] = Field(min_length=1)
    email: str = Field(min_length=3, max_length=255)
    shipping_address: PostalAddress | None = None
    billing_address: PostalAddress | None = None
    shipping_amount: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    coupon_code: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class CheckoutData(BaseModel):
    order: OrderData
    payment_intent_id: str
    client_secret: str


# ============================================================
# 优惠券
# ============================================================


def validate_coupon_rules(coupon_type: CouponType, value: Decimal) -> Decimal:
    """
    按类型校验优惠券面值

    Returns:
        规范化后的面值（免运费券恒为 0）

    Raises:
        ValueError: 面值不符合类型要求
    """
    if coupon_type is CouponType.free_shipping:
        return Decimal(0)
    if coupon_type is CouponType.percentage:
        if not (Decimal(0) < value <= Decimal(100)):
            raise ValueError("Percentage value must be in (0, 100]")
    elif coupon_type is CouponType.fixed_amount:
        if value <= 0 or value != value.to_integral_value():
            raise ValueError("Fixed amount must be a positive integer in minor units")
    elif coupon_type is CouponType.bundle_deal:
        if value < 2 or value != value.to_integral_value():
            raise ValueError("Bundle deal value must be an item count of at least 2")
    return value


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    subtotal: int = Field(ge=0)
    item_count: int = Field(default=0, ge=0)
    item_prices: list[int] = Field(default_factory=list)


class CouponQuoteData(BaseModel):
    code: str
    valid: bool
    discount_amount: int = 0
    free_shipping: bool = False
    reason: CouponRejectionReason | None = None


class CouponCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=128)
    description: str | None = None
    type: CouponType
    value: Decimal = Decimal(0)
    minimum_order_amount: int | None = Field(default=None, ge=0)
    maximum_discount_amount: int | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None

    @model_validator(mode="after")
    def _check_rules(self) -> CouponCreateRequest:
        self.value = validate_coupon_rules(self.type, self.value)
        if self.valid_from and self.valid_until and ensure_utc(self.valid_until) <= ensure_utc(self.valid_from):
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponUpdateRequest(BaseModel):
    """部分更新；类型与面值的组合在合并后统一校验"""
    name: str | None = Field(default=None, max_length=128)
    description: str | None = None
    type: CouponType | None = None
    value: Decimal | None = None
    minimum_order_amount: int | None = Field(default=None, ge=0)
    maximum_discount_amount: int | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class CouponData(BaseModel):
    id: str
    code: str
    name: str | None = None
    description: str | None = None
    type: CouponType
    value: Decimal
    minimum_order_amount: int | None = None
    maximum_discount_amount: int | None = None
    usage_limit: int | None = None
    usage_count: int
    is_active: bool
    valid_from: datetime
    valid_until: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CouponsData(BaseModel):
    data: list[CouponData]
    count: int
