"""
规范订单变更（Canonical Order Delta）

各支付渠道的 Webhook 适配器把渠道自己的事件格式转换为 OrderDelta，
对账器（reconciler）只认识这一种格式。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.enums import OrderStatus, PaymentProvider


class PostalAddress(BaseModel):
    """
    邮寄地址

    所有字段都是字符串，未知时为空字符串（从不为 None），方便持久化。
    """
    name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class OrderItemData(BaseModel):
    """订单商品（单价为最小货币单位）"""
    product_ref: str = ""
    name: str = ""
    unit_price: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    sku: str = ""

    @field_validator("product_ref", "name", "sku", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        # 渠道可能把 SKU、商品名发成数字
        return "" if v is None else str(v).strip()


class OrderDelta(BaseModel):
    """
    一次渠道通知对应的订单变更

    status 是已经映射好的规范状态；raw_status 保留渠道原始状态用于审计。
    金额字段为空表示该通知不携带金额信息（如退款、管理员改状态）。
    """
    model_config = ConfigDict(frozen=True)

    provider: PaymentProvider
    provider_transaction_id: str = Field(min_length=1, max_length=128)
    status: OrderStatus
    raw_status: str = ""

    total: int | None = Field(default=None, ge=0)
    subtotal: int | None = Field(default=None, ge=0)
    shipping_amount: int | None = Field(default=None, ge=0)
    currency: str | None = None

    customer_email: str = ""
    user_id: str | None = None
    items: list[OrderItemData] = Field(default_factory=list)
    shipping_address: PostalAddress | None = None
    billing_address: PostalAddress | None = None
    tracking_number: str | None = None
    note: str | None = None

    @field_validator("customer_email", mode="before")
    @classmethod
    def _normalize_email(cls, v: Any) -> str:
        return str(v or "").strip().lower()

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, v: Any) -> str | None:
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip().upper()

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def items_subtotal(self) -> int:
        return sum(item.unit_price * item.quantity for item in self.items)
