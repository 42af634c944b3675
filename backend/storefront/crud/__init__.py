"""CRUD 操作模块（仓储）"""
from .coupon import CouponRepository
from .order import OrderRepository

__all__ = [
    "CouponRepository",
    "OrderRepository",
]
