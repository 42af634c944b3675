"""
Webhook 接入网关

按支付渠道构造适配器。每次请求都重新读取配置，方便测试中修改密钥。
"""
from storefront.core.config import settings
from storefront.enums import PaymentProvider

from .base import WebhookAdapter
from .ecwid import EcwidWebhookAdapter
from .foxy import FoxyWebhookAdapter
from .stripe import StripeWebhookAdapter


def build_adapter(provider: PaymentProvider) -> WebhookAdapter:
    if provider is PaymentProvider.card:
        return StripeWebhookAdapter(
            secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance_seconds=settings.STRIPE_SIGNATURE_TOLERANCE_SECONDS,
        )
    if provider is PaymentProvider.hosted_cart_a:
        return FoxyWebhookAdapter(secret=settings.FOXY_WEBHOOK_SECRET)
    return EcwidWebhookAdapter(secret=settings.ECWID_WEBHOOK_SECRET)


__all__ = [
    "EcwidWebhookAdapter",
    "FoxyWebhookAdapter",
    "StripeWebhookAdapter",
    "WebhookAdapter",
    "build_adapter",
]
