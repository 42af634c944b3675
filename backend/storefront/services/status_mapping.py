"""
渠道状态映射

每个支付渠道都有自己的状态词汇，这里用纯映射表把它们翻译成
规范的 OrderStatus，对账器因此不需要关心具体渠道。

无法识别的原始状态映射为 processing 并记录告警（fail-open），
避免因为渠道新增了状态而丢失交易。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from storefront.enums import OrderStatus, PaymentProvider

logger = logging.getLogger(__name__)

UNMAPPED_DEFAULT = OrderStatus.processing

# 银行卡（Stripe）：以事件类型作为原始状态
CARD_STATUSES: dict[str, OrderStatus] = {
    "payment_intent.succeeded": OrderStatus.processing,
    "payment_intent.processing": OrderStatus.pending,
    "payment_intent.payment_failed": OrderStatus.cancelled,
    "payment_intent.canceled": OrderStatus.cancelled,
    "charge.refunded": OrderStatus.refunded,
    "charge.dispute.created": OrderStatus.cancelled,
}

# 托管购物车 A（Foxy）：交易状态
HOSTED_CART_A_STATUSES: dict[str, OrderStatus] = {
    "approved": OrderStatus.processing,
    "authorized": OrderStatus.processing,
    "captured": OrderStatus.processing,
    "completed": OrderStatus.processing,
    "pending": OrderStatus.pending,
    "declined": OrderStatus.cancelled,
    "problem": OrderStatus.cancelled,
    "rejected": OrderStatus.cancelled,
    "voided": OrderStatus.cancelled,
    "refunded": OrderStatus.refunded,
    "shipped": OrderStatus.shipped,
    "delivered": OrderStatus.delivered,
}

# 托管购物车 B（Ecwid）：支付状态 + 履约状态
HOSTED_CART_B_STATUSES: dict[str, OrderStatus] = {
    "awaiting_payment": OrderStatus.pending,
    "paid": OrderStatus.processing,
    "cancelled": OrderStatus.cancelled,
    "refunded": OrderStatus.refunded,
    "awaiting_processing": OrderStatus.processing,
    "processing": OrderStatus.processing,
    "shipped": OrderStatus.shipped,
    "delivered": OrderStatus.delivered,
    "will_not_deliver": OrderStatus.cancelled,
    "returned": OrderStatus.refunded,
}

STATUS_TABLES: dict[PaymentProvider, dict[str, OrderStatus]] = {
    PaymentProvider.card: CARD_STATUSES,
    PaymentProvider.hosted_cart_a: HOSTED_CART_A_STATUSES,
    PaymentProvider.hosted_cart_b: HOSTED_CART_B_STATUSES,
}


@dataclass(frozen=True)
class StatusMapping:
    status: OrderStatus
    mapped: bool  # False 表示原始状态无法识别，使用了默认值


def map_status(provider: PaymentProvider, raw_status: str | None) -> StatusMapping:
    """
    把渠道原始状态映射为规范状态（大小写不敏感）

    Args:
        provider: 支付渠道
        raw_status: 渠道原始状态

    Returns:
        StatusMapping: 映射结果
    """
    key = (raw_status or "").strip().lower()
    status = STATUS_TABLES[provider].get(key)
    if status is None:
        logger.warning(
            "Unmapped %s status %r, defaulting to %s",
            provider.value,
            raw_status,
            UNMAPPED_DEFAULT.value,
        )
        return StatusMapping(status=UNMAPPED_DEFAULT, mapped=False)
    return StatusMapping(status=status, mapped=True)
