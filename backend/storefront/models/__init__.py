"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- order.py: 订单及订单状态历史模型
- coupon.py: 优惠券模型
"""
from sqlmodel import SQLModel

from .base import ensure_utc, new_id, utc_now
from .coupon import Coupon, normalize_code
from .order import Order, OrderStatusHistory

__all__ = [
    "SQLModel",
    "utc_now",
    "ensure_utc",
    "new_id",
    "Order",
    "OrderStatusHistory",
    "Coupon",
    "normalize_code",
]
