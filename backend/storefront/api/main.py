"""
API 路由聚合模块

路由模块说明：
- webhooks: 支付渠道 Webhook（Stripe / Foxy / Ecwid）
- checkout: 结账
- coupons: 优惠券试算
- orders: 客户订单
- admin_orders / admin_coupons: 管理后台
- utils: 健康检查
"""
from fastapi import APIRouter

from storefront.api.routes import (
    admin_coupons,
    admin_orders,
    checkout,
    coupons,
    orders,
    utils,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(webhooks.router)  # /webhooks/*
api_router.include_router(checkout.router)  # /checkout
api_router.include_router(coupons.router)  # /coupons/*
api_router.include_router(orders.router)  # /orders/*
api_router.include_router(admin_orders.router)  # /admin/orders/*
api_router.include_router(admin_coupons.router)  # /admin/coupons/*
api_router.include_router(utils.router)  # /utils/*
