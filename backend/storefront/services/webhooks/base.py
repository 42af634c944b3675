"""
Webhook 适配器基类与公共工具

适配器负责两件事：
1. 校验请求来源（签名或共享密钥）
2. 把渠道的事件格式转换为 OrderDelta

适配器不做去重：同一事件重复投递时，由对账器的幂等逻辑保证只产生一条订单。
"""
from __future__ import annotations

import hmac
import json
import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from storefront.api.errors import InvalidSignature, MalformedPayload
from storefront.enums import PaymentProvider
from storefront.services.delta import OrderDelta
from storefront.services.coupon_engine import round_half_up

logger = logging.getLogger(__name__)


class WebhookAdapter:
    """单个支付渠道的 Webhook 适配器"""

    provider: PaymentProvider

    def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> OrderDelta:
        """
        校验并解析一次 Webhook 请求

        Args:
            raw_body: 原始请求体（签名基于原始字节计算）
            headers: 请求头

        Returns:
            OrderDelta: 规范订单变更

        Raises:
            InvalidSignature: 签名/密钥校验失败
            MalformedPayload: 请求体无法解析或缺少必填字段
            UnhandledEventType: 不需要处理的事件类型
        """
        raise NotImplementedError


def lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def parse_json(raw_body: bytes) -> dict[str, Any]:
    try:
        data = json.loads(raw_body or b"")
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedPayload("Body must be a JSON object")
    return data


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_entries(value: Any) -> list[dict[str, Any]]:
    """取出对象数组，忽略非对象元素"""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def verify_shared_secret(headers: Mapping[str, str], secret: str | None, *, provider: str) -> None:
    """
    共享密钥校验（托管购物车渠道）

    Authorization 头可以是密钥本身，也可以是 "Bearer <密钥>"。
    未配置密钥时放行并记录告警。
    """
    if not secret:
        logger.warning("%s webhook secret not configured, skipping verification", provider)
        return
    supplied = lower_headers(headers).get("authorization") or ""
    if supplied.startswith("Bearer "):
        supplied = supplied[len("Bearer "):]
    if not hmac.compare_digest(supplied.encode(), secret.encode()):
        raise InvalidSignature(f"Invalid {provider} webhook credentials")


def to_minor_units(value: Any) -> int:
    """把主货币单位金额（如 "19.99"）转换为最小货币单位（1999），四舍五入"""
    if value is None or value == "":
        return 0
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise MalformedPayload(f"Invalid amount: {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise MalformedPayload(f"Invalid amount: {value!r}")
    return round_half_up(amount * 100)


def to_int(value: Any, *, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError) as e:
        raise MalformedPayload(f"Invalid integer: {value!r}") from e


def build_delta(**kwargs: Any) -> OrderDelta:
    """
    构造 OrderDelta，字段校验失败时转换为 MalformedPayload

    商品和地址以 dict 传入，嵌套模型的校验错误也在这里统一转换。
    """
    try:
        return OrderDelta(**kwargs)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid order fields: {e.errors()[0].get('msg')}") from e
