"""优惠券仓储（Coupon Repository）"""
from __future__ import annotations

from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from storefront.api.errors import ConflictError
from storefront.models import Coupon, normalize_code, utc_now


class CouponRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, coupon_id: str) -> Coupon | None:
        return self.session.get(Coupon, coupon_id)

    def get_by_code(self, code: str) -> Coupon | None:
        """按优惠券码查询（大小写不敏感，忽略首尾空白）"""
        stmt = select(Coupon).where(Coupon.code == normalize_code(code))
        return self.session.exec(stmt).first()

    def list_all(self, *, is_active: bool | None = None, offset: int = 0, limit: int = 50) -> list[Coupon]:
        stmt = select(Coupon)
        if is_active is not None:
            stmt = stmt.where(Coupon.is_active == is_active)
        stmt = stmt.order_by(Coupon.created_at.desc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt).all())

    def count(self, *, is_active: bool | None = None) -> int:
        stmt = select(func.count()).select_from(Coupon)
        if is_active is not None:
            stmt = stmt.where(Coupon.is_active == is_active)
        return self.session.exec(stmt).one()

    def create(self, coupon: Coupon) -> Coupon:
        coupon.code = normalize_code(coupon.code)
        self.session.add(coupon)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("A coupon with this code already exists", code=409401)
        self.session.refresh(coupon)
        return coupon

    def update(self, coupon: Coupon, fields: dict[str, Any]) -> Coupon:
        for key, value in fields.items():
            setattr(coupon, key, value)
        coupon.updated_at = utc_now()
        self.session.add(coupon)
        self.session.commit()
        self.session.refresh(coupon)
        return coupon

    def increment_usage(self, coupon_id: str) -> bool:
        """
        核销一次优惠券（usage_count + 1）

        使用带条件的 UPDATE，并发核销时不会超过 usage_limit。

        Returns:
            是否核销成功（达到上限时返回 False）
        """
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)  # type: ignore[arg-type]
            .where(
                or_(
                    Coupon.usage_limit.is_(None),  # type: ignore[union-attr]
                    Coupon.usage_count < Coupon.usage_limit,  # type: ignore[operator]
                )
            )
            .values(usage_count=Coupon.usage_count + 1, updated_at=utc_now())
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def release_usage(self, coupon_id: str) -> None:
        """退回一次核销（结账中途失败时使用），usage_count 不会小于 0"""
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)  # type: ignore[arg-type]
            .where(Coupon.usage_count > 0)  # type: ignore[operator]
            .values(usage_count=Coupon.usage_count - 1, updated_at=utc_now())
        )
        self.session.execute(stmt)
        self.session.commit()
