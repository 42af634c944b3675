"""
银行卡支付（Stripe）Webhook 适配器

签名校验交给 stripe SDK（Stripe-Signature 头中的 t=/v1=，HMAC-SHA256），
时间戳超出容差的请求视为重放，拒绝。

交易 ID 统一使用 PaymentIntent ID：
- payment_intent.* 事件：data.object.id
- charge.* / charge.dispute.* 事件：data.object.payment_intent
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import stripe

from storefront.api.errors import InvalidSignature, MalformedPayload, UnhandledEventType
from storefront.enums import PaymentProvider
from storefront.services.delta import OrderDelta, PostalAddress
from storefront.services.status_mapping import CARD_STATUSES, map_status

from .base import WebhookAdapter, as_dict, build_delta, lower_headers, parse_json, to_int

SIGNATURE_HEADER = "stripe-signature"


class StripeWebhookAdapter(WebhookAdapter):
    provider = PaymentProvider.card

    def __init__(self, *, secret: str | None, tolerance_seconds: int = 300) -> None:
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    def verify(self, raw_body: bytes, signature_header: str | None) -> None:
        if not self.secret:
            raise InvalidSignature("Webhook secret not configured")
        if not signature_header:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload("Body is not valid UTF-8") from e
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.secret, tolerance=self.tolerance_seconds
            )
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(str(e) or "Invalid signature") from e

    def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> OrderDelta:
        self.verify(raw_body, lower_headers(headers).get(SIGNATURE_HEADER))

        event = parse_json(raw_body)
        event_type = str(event.get("type") or "")
        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not event_type or not isinstance(obj, dict):
            raise MalformedPayload("Missing event type or data.object")
        if event_type not in CARD_STATUSES:
            raise UnhandledEventType(event_type)

        is_intent = event_type.startswith("payment_intent.")
        txn_id = obj.get("id") if is_intent else obj.get("payment_intent")
        if not txn_id:
            raise MalformedPayload("Missing payment intent id")

        metadata = as_dict(obj.get("metadata"))
        amount = (obj.get("amount_received") or obj.get("amount")) if is_intent else None
        shipping = as_dict(obj.get("shipping"))

        return build_delta(
            provider=self.provider,
            provider_transaction_id=str(txn_id),
            status=map_status(self.provider, event_type).status,
            raw_status=event_type,
            total=to_int(amount) if amount is not None else None,
            currency=obj.get("currency"),
            customer_email=obj.get("receipt_email") or metadata.get("email") or "",
            user_id=metadata.get("userId") or metadata.get("user_id"),
            shipping_address=_shipping_address(shipping),
            tracking_number=shipping.get("tracking_number"),
            note="webhook",
        )


def _shipping_address(shipping: dict[str, Any]) -> PostalAddress | None:
    address = shipping.get("address")
    if not isinstance(address, dict):
        return None
    street = " ".join(str(part) for part in (address.get("line1"), address.get("line2")) if part)
    return PostalAddress(
        name=shipping.get("name"),
        street=street,
        city=address.get("city"),
        state=address.get("state"),
        zip_code=address.get("postal_code"),
        country=address.get("country"),
    )
