"""
托管购物车 B（Ecwid）Webhook 适配器

两种请求体都接受：
- 事件信封：{"eventType": "order.updated", "data": {...订单...}}
- 直接推送的订单文档

订单状态同时有支付状态和履约状态；已发货/已送达/退货等履约状态
比支付状态更能反映订单进度，优先使用。
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
    parse_json,
    to_int,
    to_minor_units,
    verify_shared_secret,
)

HANDLED_EVENTS = frozenset({"order.created", "order.updated"})

PRIORITY_FULFILLMENT_STATUSES = frozenset({"SHIPPED", "DELIVERED", "WILL_NOT_DELIVER", "RETURNED"})


def resolve_raw_status(payment_status: str, fulfillment_status: str) -> str:
    if fulfillment_status.upper() in PRIORITY_FULFILLMENT_STATUSES:
        return fulfillment_status
    return payment_status or fulfillment_status


class EcwidWebhookAdapter(WebhookAdapter):
    provider = PaymentProvider.hosted_cart_b

    def __init__(self, *, secret: str | None) -> None:
        self.secret = secret

    def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> OrderDelta:
        verify_shared_secret(headers, self.secret, provider="Ecwid")

        body = parse_json(raw_body)
        if "eventType" in body:
            event = str(body.get("eventType") or "")
            if event not in HANDLED_EVENTS:
                raise UnhandledEventType(event)
            order = body.get("data")
            if not isinstance(order, dict):
                raise MalformedPayload("Missing order data")
        else:
            event = "order.created"
            order = body

        txn_id = str(
            order.get("orderNumber") or order.get("id") or order.get("orderId") or ""
        ).strip()
        if not txn_id:
            raise MalformedPayload("Missing order number")

        # 状态变更事件可能只带订单号和新状态；新订单必须带邮箱
        email = order.get("email") or ""
        if not email and event == "order.created":
            raise MalformedPayload("Missing email")

        payment_status = str(order.get("paymentStatus") or order.get("newPaymentStatus") or "")
        fulfillment_status = str(
            order.get("fulfillmentStatus") or order.get("newFulfillmentStatus") or ""
        )
        raw_status = resolve_raw_status(payment_status, fulfillment_status)

        total = order.get("total")
        subtotal = order.get("subtotal")
        items = [_item(entry) for entry in as_entries(order.get("items"))]

        return build_delta(
            provider=self.provider,
            provider_transaction_id=txn_id,
            status=map_status(self.provider, raw_status).status,
            raw_status=raw_status,
            total=to_minor_units(total) if total is not None else None,
            subtotal=to_minor_units(subtotal) if subtotal is not None else None,
            currency=order.get("currency"),
            customer_email=email,
            items=items,
            shipping_address=_person(order.get("shippingPerson")),
            billing_address=_person(order.get("billingPerson")),
            tracking_number=order.get("trackingNumber") or None,
            note=event,
        )


def _item(entry: dict[str, Any]) -> dict[str, Any]:
    return dict(
        product_ref=str(entry.get("productId") or ""),
        name=entry.get("name") or "",
        unit_price=to_minor_units(entry.get("price")),
        quantity=max(to_int(entry.get("quantity"), default=1), 1),
        sku=entry.get("sku") or "",
    )


def _person(person: Any) -> PostalAddress | None:
    if not isinstance(person, dict):
        return None
    return PostalAddress(
        name=person.get("name"),
        street=person.get("street"),
        city=person.get("city"),
        state=person.get("stateOrProvinceCode") or person.get("stateOrProvinceName"),
        zip_code=person.get("postalCode"),
        country=person.get("countryCode") or person.get("countryName"),
    )
