"""
订单模型模块

定义规范订单（canonical order）及其状态历史的数据库模型。
所有支付渠道的通知最终都会归一化为这里的一条订单记录。
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from storefront.enums import OrderStatus, PaymentProvider

from .base import new_id, utc_now


class Order(SQLModel, table=True):
    """
    订单模型

    (provider, provider_transaction_id) 联合唯一，重复投递的同一通知
    不会产生第二条订单；这是幂等性的最终保障。

    字段说明：
    - id: 内部主键（首次创建时生成，不可变）
    - provider / provider_transaction_id: 支付渠道及其交易 ID
    - user_id: 用户 ID（游客订单为空，之后可按邮箱认领）
    - customer_email: 客户邮箱（已规范化，未知时为空字符串）
    - status: 订单状态
    - total: 折扣前订单总额（最小货币单位，商品 + 运费）
    - subtotal: 折扣前商品小计（最小货币单位）
    - shipping_amount: 运费（最小货币单位）
    - discount_amount: 折扣金额（不超过 subtotal）
    - currency: ISO 4217 货币代码
    - items: 订单商品列表（JSON）
    - shipping_address / billing_address: 地址（JSON，字段均为字符串）
    - coupon_code / free_shipping: 已应用的优惠券
    - tracking_number: 物流单号
    - last_raw_status: 渠道最近一次推送的原始状态
    - notes / admin_notes: 客户备注 / 管理员备注
    - shipped_at / delivered_at: 发货 / 送达时间
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("provider", "provider_transaction_id", name="uq_orders_provider_txn"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    provider: PaymentProvider = Field(sa_column=Column(String(16), nullable=False))
    provider_transaction_id: str = Field(sa_column=Column(String(128), nullable=False))

    user_id: str | None = Field(default=None, sa_column=Column(String(64), index=True, nullable=True))
    customer_email: str = Field(
        default="", sa_column=Column(String(255), index=True, nullable=False, default="")
    )

    status: OrderStatus = Field(sa_column=Column(String(16), nullable=False))

    total: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    subtotal: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    shipping_amount: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    discount_amount: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    currency: str = Field(default="USD", max_length=8)

    items: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    shipping_address: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    billing_address: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    coupon_code: str | None = Field(default=None, max_length=64)
    free_shipping: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))

    tracking_number: str | None = Field(default=None, max_length=128)
    last_raw_status: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    admin_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    shipped_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    delivered_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def amount_due(self) -> int:
        """实际应付金额（总额减去折扣，不小于 0）"""
        return max(self.total - self.discount_amount, 0)


class OrderStatusHistory(SQLModel, table=True):
    """
    订单状态历史模型

    订单每进入一个状态（包括初始状态）记录一条，
    与状态变更在同一个事务中写入。

    字段说明：
    - order_id: 订单 ID
    - status: 进入的状态
    - raw_status: 触发该状态的渠道原始状态（管理员操作时为空）
    - note: 备注（如 "admin"、"webhook"）
    - notify_customer: 是否触发了客户通知
    """
    __tablename__ = "order_status_history"
    __table_args__ = (Index("ix_order_status_history_order_created", "order_id", "created_at"),)

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    order_id: str = Field(sa_column=Column(String(32), nullable=False))
    status: OrderStatus = Field(sa_column=Column(String(16), nullable=False))
    raw_status: str | None = Field(default=None, max_length=64)
    note: str | None = Field(default=None, max_length=255)
    notify_customer: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
