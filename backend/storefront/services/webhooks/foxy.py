"""
托管购物车 A（Foxy）Webhook 适配器

事件类型来自 Foxy-Webhook-Event 请求头，请求体是扁平的交易文档。
金额为主货币单位的十进制字符串（如 "19.99"）。
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from storefront.api.errors import MalformedPayload, UnhandledEventType
from storefront.enums import PaymentProvider
from storefront.services.delta import OrderDelta, PostalAddress
from storefront.services.status_mapping import map_status

from .base import (
    WebhookAdapter,
    as_entries,
    build_delta,
    lower_headers,
    parse_json,
    to_int,
    to_minor_units,
    verify_shared_secret,
)

EVENT_HEADER = "foxy-webhook-event"
DEFAULT_EVENT = "transaction/created"

HANDLED_EVENTS = frozenset(
    {
        "transaction/created",
        "transaction/modified",
        "transaction/captured",
        "transaction/refunded",
        "transaction/voided",
    }
)

# 这两类事件本身就说明了交易状态，优先于请求体中的 status
EVENT_STATUS_OVERRIDES = {
    "transaction/refunded": "refunded",
    "transaction/voided": "voided",
}


class FoxyWebhookAdapter(WebhookAdapter):
    provider = PaymentProvider.hosted_cart_a

    def __init__(self, *, secret: str | None) -> None:
        self.secret = secret

    def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> OrderDelta:
        verify_shared_secret(headers, self.secret, provider="Foxy")

        event = (lower_headers(headers).get(EVENT_HEADER) or DEFAULT_EVENT).strip().lower()
        if event not in HANDLED_EVENTS:
            raise UnhandledEventType(event)

        data = parse_json(raw_body)
        txn_id = str(data.get("id") or "").strip()
        if not txn_id:
            raise MalformedPayload("Missing transaction id")
        email = data.get("customer_email")
        if not email:
            raise MalformedPayload("Missing customer_email")

        raw_status = EVENT_STATUS_OVERRIDES.get(event) or str(data.get("status") or "")
        items = [_item(entry) for entry in as_entries(data.get("items"))]
        shipping_total = data.get("shipping_total")

        return build_delta(
            provider=self.provider,
            provider_transaction_id=txn_id,
            status=map_status(self.provider, raw_status).status,
            raw_status=raw_status,
            total=to_minor_units(data.get("transaction_total")),
            shipping_amount=to_minor_units(shipping_total) if shipping_total not in (None, "") else None,
            currency=data.get("currency_code"),
            customer_email=email,
            items=items,
            shipping_address=_address(data, "shipping", name_prefix="shipping"),
            billing_address=_address(data, "billing", name_prefix="customer"),
            tracking_number=data.get("tracking_number") or None,
            note=event,
        )


def _item(entry: dict[str, Any]) -> dict[str, Any]:
    return dict(
        product_ref=str(entry.get("id") or entry.get("code") or ""),
        name=entry.get("name") or "",
        unit_price=to_minor_units(entry.get("price")),
        quantity=max(to_int(entry.get("quantity"), default=1), 1),
        sku=entry.get("code") or "",
    )


def _address(data: dict[str, Any], prefix: str, *, name_prefix: str) -> PostalAddress:
    return PostalAddress(
        name=_join(data.get(f"{name_prefix}_first_name"), data.get(f"{name_prefix}_last_name")),
        street=_join(data.get(f"{prefix}_address1"), data.get(f"{prefix}_address2")),
        city=data.get(f"{prefix}_city"),
        state=data.get(f"{prefix}_state"),
        zip_code=data.get(f"{prefix}_postal_code"),
        country=data.get(f"{prefix}_country"),
    )


def _join(*parts: Any) -> str:
    return " ".join(str(part) for part in parts if part)
