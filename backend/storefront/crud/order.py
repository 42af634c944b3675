"""订单仓储（Order Repository）"""
from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from storefront.api.errors import DuplicateKeyError
from storefront.enums import OrderStatus, PaymentProvider
from storefront.models import Order, OrderStatusHistory, utc_now

# update_fields 允许修改的字段（状态只能通过 update_status 修改）
MUTABLE_FIELDS = frozenset(
    {
        "user_id",
        "customer_email",
        "total",
        "subtotal",
        "shipping_amount",
        "discount_amount",
        "currency",
        "items",
        "shipping_address",
        "billing_address",
        "coupon_code",
        "free_shipping",
        "tracking_number",
        "last_raw_status",
        "notes",
        "admin_notes",
        "shipped_at",
        "delivered_at",
    }
)


class OrderRepository:
    """
    订单的增删改查封装

    create 依赖数据库唯一约束实现幂等：并发创建同一个
    (provider, provider_transaction_id) 时，只有一个会成功，
    其余抛出 DuplicateKeyError。
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, order_id: str) -> Order | None:
        return self.session.get(Order, order_id)

    def find_by_provider_txn(
        self, provider: PaymentProvider, provider_transaction_id: str
    ) -> Order | None:
        stmt = select(Order).where(
            Order.provider == provider.value,
            Order.provider_transaction_id == provider_transaction_id,
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: str, *, offset: int = 0, limit: int = 20) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(Order).where(Order.user_id == user_id)
        return self.session.exec(stmt).one()

    def list_all(
        self, *, offset: int = 0, limit: int = 20, status: OrderStatus | None = None
    ) -> list[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status.value)
        stmt = stmt.order_by(Order.created_at.desc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt).all())

    def count(self, *, status: OrderStatus | None = None) -> int:
        stmt = select(func.count()).select_from(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status.value)
        return self.session.exec(stmt).one()

    def create(self, order: Order, *, history_note: str | None = None) -> Order:
        """
        创建订单，并写入初始状态历史

        Raises:
            DuplicateKeyError: 同一渠道交易 ID 的订单已存在
        """
        self.session.add(order)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateKeyError(PaymentProvider(order.provider).value, order.provider_transaction_id)
        self.add_history(
            order.id,
            OrderStatus(order.status),
            raw_status=order.last_raw_status,
            note=history_note,
        )
        self.session.commit()
        self.session.refresh(order)
        return order

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        fields: dict[str, Any] | None = None,
        *,
        raw_status: str | None = None,
        note: str | None = None,
        notify_customer: bool = False,
    ) -> Order | None:
        """修改订单状态（连同其他字段），并记录状态历史"""
        order = self.get(order_id)
        if order is None:
            return None
        self._apply(order, fields or {})
        order.status = status
        self.add_history(
            order.id, status, raw_status=raw_status, note=note, notify_customer=notify_customer
        )
        self.session.add(order)
        self.session.commit()
        self.session.refresh(order)
        return order

    def update_fields(self, order_id: str, fields: dict[str, Any]) -> Order | None:
        """修改订单的非状态字段"""
        order = self.get(order_id)
        if order is None:
            return None
        if not fields:
            return order
        self._apply(order, fields)
        self.session.add(order)
        self.session.commit()
        self.session.refresh(order)
        return order

    def add_history(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        raw_status: str | None = None,
        note: str | None = None,
        notify_customer: bool = False,
    ) -> OrderStatusHistory:
        """记录一条状态历史（不提交，由调用方随状态修改一起提交）"""
        entry = OrderStatusHistory(
            order_id=order_id,
            status=status,
            raw_status=raw_status,
            note=note,
            notify_customer=notify_customer,
        )
        self.session.add(entry)
        return entry

    def history(self, order_id: str) -> list[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at)
        )
        return list(self.session.exec(stmt).all())

    def link_guest_orders(self, *, email: str, user_id: str) -> int:
        """把该邮箱下的游客订单关联到用户，返回关联数量"""
        stmt = select(Order).where(
            Order.customer_email == email.strip().lower(),
            Order.user_id.is_(None),  # type: ignore[union-attr]
        )
        orders = self.session.exec(stmt).all()
        now = utc_now()
        for order in orders:
            order.user_id = user_id
            order.updated_at = now
            self.session.add(order)
        self.session.commit()
        return len(orders)

    @staticmethod
    def _apply(order: Order, fields: dict[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        for key, value in fields.items():
            setattr(order, key, value)
        order.updated_at = utc_now()
