"""
优惠券模型模块

定义优惠券（折扣规则）的数据库模型。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, Numeric, String, Text
from sqlmodel import Field, SQLModel

from storefront.enums import CouponType

from .base import new_id, utc_now


def normalize_code(code: str) -> str:
    """优惠券码规范化：去除首尾空白并转为大写"""
    return code.strip().upper()


class Coupon(SQLModel, table=True):
    """
    优惠券模型

    由管理员创建，永不物理删除，通过 is_active 停用。
    usage_count 只在成功核销时递增。

    字段说明：
    - code: 优惠券码（唯一，存储为去空白的大写形式）
    - name / description: 名称 / 描述
    - type: 优惠券类型
    - value: 数值（含义取决于 type，见 CouponType）
    - minimum_order_amount: 最低订单金额（最小货币单位，可选）
    - maximum_discount_amount: 最高折扣金额（最小货币单位，可选）
    - usage_limit: 使用次数上限（为空表示不限）
    - usage_count: 已使用次数
    - is_active: 是否启用
    - valid_from / valid_until: 有效期（valid_until 为空表示长期有效）
    """
    __tablename__ = "coupons"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    code: str = Field(sa_column=Column(String(64), unique=True, index=True, nullable=False))
    name: str = Field(default="", max_length=255)
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    type: CouponType = Field(sa_column=Column(String(16), nullable=False))
    value: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(12, 2), nullable=False),
    )
    minimum_order_amount: int | None = Field(default=None)
    maximum_discount_amount: int | None = Field(default=None)

    usage_limit: int | None = Field(default=None)
    usage_count: int = Field(default=0)
    is_active: bool = Field(default=True)

    valid_from: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    valid_until: datetime | None = Field(
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
