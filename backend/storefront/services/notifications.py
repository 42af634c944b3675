"""
订单通知分发

根据通知类型组装邮件并交给 EmailClient 发送。
send() 从不抛异常：发送失败只记录日志，绝不能影响已经持久化的订单状态。
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Protocol

from storefront.core.config import settings
from storefront.enums import NotificationKind
from storefront.integrations.email import EmailClient, EmailMessage, NotificationError
from storefront.models import Order

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, kind: NotificationKind, order: Order, extra: dict[str, Any] | None = None) -> bool:
        ...


def _money(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency}"


def compose(kind: NotificationKind, order: Order, extra: dict[str, Any] | None = None) -> EmailMessage:
    """组装通知邮件（纯文本）"""
    extra = extra or {}
    number = order.id[:8].upper()
    link = f"{settings.SITE_URL.rstrip('/')}/account/orders/{order.id}"

    if kind is NotificationKind.shipped:
        tracking = extra.get("tracking_number") or order.tracking_number
        subject = f"Your order #{number} has shipped"
        lines = [f"Good news! Your order #{number} is on its way."]
        if tracking:
            lines.append(f"Tracking number: {tracking}")
    elif kind is NotificationKind.delivered:
        subject = f"Your order #{number} has been delivered"
        lines = [f"Your order #{number} has been delivered. We hope you enjoy it."]
    else:
        subject = f"Order #{number} has been cancelled"
        lines = [f"Your order #{number} has been cancelled."]

    lines += [
        "",
        f"Order total: {_money(order.amount_due, order.currency)}",
        f"View your order: {link}",
    ]
    return EmailMessage(
        to=order.customer_email,
        subject=subject,
        text="\n".join(lines),
        tags={"kind": kind.value, "order_id": order.id},
    )


class NotificationDispatcher:
    """通知分发器（fire-and-forget）"""

    def __init__(self, email_client: EmailClient | None = None) -> None:
        self.email_client = email_client or EmailClient()

    def send(self, kind: NotificationKind, order: Order, extra: dict[str, Any] | None = None) -> bool:
        """
        发送订单通知

        Returns:
            是否发送成功（失败时已记录日志）
        """
        try:
            self.email_client.send(compose(kind, order, extra))
        except NotificationError as e:
            logger.error("Failed to send %s notification for order %s: %s", kind.value, order.id, e)
            return False
        except Exception:
            logger.exception("Unexpected error sending %s notification for order %s", kind.value, order.id)
            return False
        return True


@lru_cache(maxsize=1)
def get_notifier() -> NotificationDispatcher:
    """获取全局通知分发器（单例），路由通过依赖注入使用"""
    return NotificationDispatcher()
