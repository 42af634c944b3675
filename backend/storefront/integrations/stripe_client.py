"""
Stripe 支付 API 集成模块

结账时创建 PaymentIntent，前端拿 client_secret 完成支付；
支付结果通过 Webhook（payment_intent.*）异步回来。

通过官方 stripe SDK 调用；支持模拟模式（mock），本地开发时不调用真实 API。
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

import stripe

from storefront.api.errors import AppError
from storefront.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentResult:
    """PaymentIntent 创建结果"""
    intent_id: str  # pi_...
    client_secret: str  # 前端确认支付时使用
    status: str


class StripeClient:
    """Stripe API 客户端（只用到 PaymentIntent）"""

    def __init__(self) -> None:
        self._mock = settings.STRIPE_MOCK
        self._api_key = settings.STRIPE_API_KEY

    def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        receipt_email: str | None = None,
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentIntentResult:
        """
        创建 PaymentIntent

        Args:
            amount: 金额（最小货币单位）
            currency: 货币代码
            receipt_email: 收据邮箱（Webhook 中会原样带回）
            metadata: 附加数据（如 email、userId，Webhook 中会原样带回）
            idempotency_key: 幂等键，重试时不会重复创建

        Returns:
            PaymentIntentResult: 创建结果

        Raises:
            AppError: 未配置密钥、API 调用失败或返回格式不正确
        """
        if self._mock:
            intent_id = f"pi_mock_{uuid.uuid4().hex[:24]}"
            return PaymentIntentResult(
                intent_id=intent_id,
                client_secret=f"{intent_id}_secret_mock",
                status="requires_payment_method",
            )

        if not self._api_key:
            raise AppError(code=500201, message="STRIPE_API_KEY not configured", status_code=500)

        params: dict = {
            "amount": amount,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata or {},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self._api_key,
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as e:
            logger.error("Stripe create payment intent failed: %s", e)
            raise AppError(code=502201, message=f"Stripe create payment intent error: {e}", status_code=502)

        intent_id = getattr(intent, "id", None)
        client_secret = getattr(intent, "client_secret", None)
        if not intent_id or not client_secret:
            raise AppError(code=502202, message="Stripe invalid response", status_code=502)
        return PaymentIntentResult(
            intent_id=intent_id,
            client_secret=client_secret,
            status=str(getattr(intent, "status", None) or ""),
        )
