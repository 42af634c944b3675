"""
订单对账器（Order Reconciler）

把规范订单变更（OrderDelta）应用到订单上：

1. 按 (provider, provider_transaction_id) 查找订单
2. 不存在则按变更的状态创建（幂等边界：数据库唯一约束兜底，
   并发创建落败时改为重新读取）
3. 存在则按状态机校验后修改状态；终态订单只更新元数据（如物流单号）
4. 先持久化，再发送通知；通知失败不会回滚订单状态

状态机：
    pending → processing → shipped → delivered
    pending → cancelled
    processing → cancelled
    processing → refunded
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from storefront.api.errors import DuplicateKeyError, order_not_found
from storefront.crud import OrderRepository
from storefront.enums import NotificationKind, OrderStatus
from storefront.models import Order, utc_now
from storefront.services.delta import OrderDelta, PostalAddress
from storefront.services.notifications import Notifier

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.pending: frozenset({OrderStatus.processing, OrderStatus.cancelled}),
    OrderStatus.processing: frozenset(
        {OrderStatus.shipped, OrderStatus.cancelled, OrderStatus.refunded}
    ),
    OrderStatus.shipped: frozenset({OrderStatus.delivered}),
}

NOTIFICATIONS: dict[OrderStatus, NotificationKind] = {
    OrderStatus.shipped: NotificationKind.shipped,
    OrderStatus.delivered: NotificationKind.delivered,
    OrderStatus.cancelled: NotificationKind.cancelled,
}

# 这些状态的通知不会为未知交易创建订单（如支付失败、退款）
NON_CREATING_STATUSES = frozenset({OrderStatus.cancelled, OrderStatus.refunded})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def initial_status(target: OrderStatus) -> OrderStatus:
    """新订单的初始状态：pending 保持 pending，其余一律从 processing 开始"""
    if target is OrderStatus.pending:
        return OrderStatus.pending
    return OrderStatus.processing


@dataclass
class ReconcileResult:
    order: Order | None
    created: bool = False
    status_changed: bool = False
    previous_status: OrderStatus | None = None
    notifications: list[NotificationKind] = field(default_factory=list)


class OrderReconciler:
    def __init__(self, repository: OrderRepository, notifier: Notifier) -> None:
        self.repository = repository
        self.notifier = notifier

    def reconcile(self, delta: OrderDelta) -> ReconcileResult:
        order = self.repository.find_by_provider_txn(delta.provider, delta.provider_transaction_id)
        created = False

        if order is None:
            if delta.status in NON_CREATING_STATUSES:
                logger.info(
                    "No order for %s:%s and delta status is %s; nothing to create",
                    delta.provider.value,
                    delta.provider_transaction_id,
                    delta.status.value,
                )
                return ReconcileResult(order=None)
            try:
                order = self.repository.create(self._new_order(delta), history_note=delta.note)
                created = True
                logger.info(
                    "Created order %s for %s:%s in %s",
                    order.id,
                    delta.provider.value,
                    delta.provider_transaction_id,
                    order.status,
                )
            except DuplicateKeyError:
                # 并发投递：另一个请求先创建成功，读取它的结果继续处理
                logger.info(
                    "Order for %s:%s created concurrently; re-reading",
                    delta.provider.value,
                    delta.provider_transaction_id,
                )
                order = self.repository.find_by_provider_txn(
                    delta.provider, delta.provider_transaction_id
                )
                if order is None:
                    raise

        fields = {} if created else self._metadata_fields(order, delta)
        current = OrderStatus(order.status)
        target = delta.status

        if target is current:
            return self._finish(order, fields, created=created)

        if current.is_terminal or not can_transition(current, target):
            logger.warning(
                "Skipping transition %s -> %s for order %s (raw status %r)",
                current.value,
                target.value,
                order.id,
                delta.raw_status,
            )
            return self._finish(order, fields, created=created)

        now = utc_now()
        if target is OrderStatus.shipped:
            fields["shipped_at"] = now
        elif target is OrderStatus.delivered:
            fields["delivered_at"] = now

        kind = NOTIFICATIONS.get(target)
        updated = self.repository.update_status(
            order.id,
            target,
            fields,
            raw_status=delta.raw_status or None,
            note=delta.note,
            notify_customer=kind is not None,
        )
        if updated is None:
            raise order_not_found()
        logger.info("Order %s: %s -> %s", updated.id, current.value, target.value)

        result = ReconcileResult(
            order=updated, created=created, status_changed=True, previous_status=current
        )
        # 状态已提交，再发通知
        if kind is not None:
            self.notifier.send(kind, updated, {"tracking_number": updated.tracking_number})
            result.notifications.append(kind)
        return result

    def _finish(self, order: Order, fields: dict[str, Any], *, created: bool) -> ReconcileResult:
        if fields:
            order = self.repository.update_fields(order.id, fields) or order
        return ReconcileResult(order=order, created=created)

    @staticmethod
    def _new_order(delta: OrderDelta) -> Order:
        shipping = delta.shipping_amount or 0
        if delta.subtotal is not None:
            subtotal = delta.subtotal
        elif delta.items:
            subtotal = delta.items_subtotal
        else:
            subtotal = max((delta.total or 0) - shipping, 0)
        total = delta.total if delta.total is not None else subtotal + shipping

        return Order(
            provider=delta.provider,
            provider_transaction_id=delta.provider_transaction_id,
            user_id=delta.user_id,
            customer_email=delta.customer_email,
            status=initial_status(delta.status),
            total=total,
            subtotal=subtotal,
            shipping_amount=shipping,
            currency=delta.currency or "USD",
            items=[item.model_dump() for item in delta.items],
            shipping_address=(delta.shipping_address or PostalAddress()).model_dump(),
            billing_address=(delta.billing_address or PostalAddress()).model_dump(),
            tracking_number=delta.tracking_number,
            last_raw_status=delta.raw_status or None,
        )

    @staticmethod
    def _metadata_fields(order: Order, delta: OrderDelta) -> dict[str, Any]:
        """终态订单也允许更新的元数据字段"""
        fields: dict[str, Any] = {}
        if delta.tracking_number and delta.tracking_number != order.tracking_number:
            fields["tracking_number"] = delta.tracking_number
        if delta.raw_status and delta.raw_status != order.last_raw_status:
            fields["last_raw_status"] = delta.raw_status
        if delta.customer_email and not order.customer_email:
            fields["customer_email"] = delta.customer_email
        if delta.user_id and not order.user_id:
            fields["user_id"] = delta.user_id
        if delta.items and not order.items:
            fields["items"] = [item.model_dump() for item in delta.items]
        for name in ("shipping_address", "billing_address"):
            address = getattr(delta, name)
            if address is not None and not address.is_empty():
                dumped = address.model_dump()
                if dumped != getattr(order, name):
                    fields[name] = dumped
        return fields
