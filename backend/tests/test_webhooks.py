from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest

from storefront.api.errors import InvalidSignature, MalformedPayload, UnhandledEventType
from storefront.core.config import settings
from storefront.enums import NotificationKind, OrderStatus, PaymentProvider
from storefront.services.reconciler import OrderReconciler
from storefront.services.webhooks import (
    EcwidWebhookAdapter,
    FoxyWebhookAdapter,
    StripeWebhookAdapter,
)
from storefront.services.webhooks.base import to_minor_units
from storefront.services.webhooks.ecwid import resolve_raw_status

SECRET = "whsec_test"


def _signature(secret: str, timestamp: int, body: bytes) -> str:
    return hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()


def _stripe_event(event_type: str, obj: dict) -> bytes:
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": obj}}).encode()


def _signed(body: bytes, secret: str = SECRET, timestamp: int | None = None) -> dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "Stripe-Signature": f"t={ts},v1={_signature(secret, ts, body)}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def stripe_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", SECRET)
    return SECRET


# ---------------------------------------------------------------- adapters


def test_stripe_adapter_builds_delta():
    body = _stripe_event(
        "payment_intent.succeeded",
        {
            "id": "pi_123",
            "amount": 3000,
            "amount_received": 2599,
            "currency": "usd",
            "receipt_email": "Buyer@Example.com",
            "metadata": {"userId": "user-9"},
            "shipping": {
                "name": "Ann Lee",
                "address": {"line1": "1 Main St", "line2": "Apt 2", "city": "Austin", "postal_code": "78701"},
            },
        },
    )
    delta = StripeWebhookAdapter(secret=SECRET).ingest(body, _signed(body))
    assert delta.provider is PaymentProvider.card
    assert delta.provider_transaction_id == "pi_123"
    assert delta.status is OrderStatus.processing
    assert delta.total == 2599
    assert delta.currency == "USD"
    assert delta.customer_email == "buyer@example.com"
    assert delta.user_id == "user-9"
    assert delta.shipping_address.street == "1 Main St Apt 2"
    assert delta.shipping_address.country == ""


def test_stripe_charge_events_use_payment_intent_id():
    body = _stripe_event(
        "charge.refunded",
        {"id": "ch_1", "payment_intent": "pi_123", "amount": 2599, "metadata": {"email": "a@b.co"}},
    )
    delta = StripeWebhookAdapter(secret=SECRET).ingest(body, _signed(body))
    assert delta.provider_transaction_id == "pi_123"
    assert delta.status is OrderStatus.refunded
    assert delta.total is None
    assert delta.customer_email == "a@b.co"


def test_stripe_accepts_any_matching_v1_signature():
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_1"})
    ts = int(time.time())
    header = f"t={ts},v1=deadbeef,v1={_signature(SECRET, ts, body)}"
    delta = StripeWebhookAdapter(secret=SECRET).ingest(body, {"stripe-signature": header})
    assert delta.provider_transaction_id == "pi_1"


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Stripe-Signature": "garbage"},
        {"Stripe-Signature": "t=abc,v1=00"},
        {"Stripe-Signature": "t=1,v1="},
    ],
)
def test_stripe_rejects_malformed_signature_headers(headers):
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_1"})
    with pytest.raises(InvalidSignature):
        StripeWebhookAdapter(secret=SECRET).ingest(body, headers)


def test_stripe_rejects_wrong_secret_and_tampered_body():
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_1"})
    adapter = StripeWebhookAdapter(secret=SECRET)
    with pytest.raises(InvalidSignature):
        adapter.ingest(body, _signed(body, secret="whsec_other"))
    with pytest.raises(InvalidSignature):
        adapter.ingest(body + b" ", _signed(body))


def test_stripe_rejects_stale_timestamp():
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_1"})
    adapter = StripeWebhookAdapter(secret=SECRET, tolerance_seconds=300)
    now = int(time.time())
    with pytest.raises(InvalidSignature):
        adapter.ingest(body, _signed(body, timestamp=now - 600))
    assert adapter.ingest(body, _signed(body, timestamp=now - 60)).provider_transaction_id == "pi_1"


def test_stripe_requires_configured_secret():
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_1"})
    with pytest.raises(InvalidSignature):
        StripeWebhookAdapter(secret=None).ingest(body, _signed(body))


def test_stripe_unhandled_and_malformed():
    adapter = StripeWebhookAdapter(secret=SECRET)
    body = _stripe_event("customer.created", {"id": "cus_1"})
    with pytest.raises(UnhandledEventType) as exc:
        adapter.ingest(body, _signed(body))
    assert exc.value.event_type == "customer.created"

    for bad in (b"not json", b"[]", b"\xff\xfe", json.dumps({"type": "payment_intent.succeeded"}).encode()):
        with pytest.raises(MalformedPayload):
            adapter.ingest(bad, _signed(bad))

    no_id = _stripe_event("charge.refunded", {"id": "ch_1"})
    with pytest.raises(MalformedPayload):
        adapter.ingest(no_id, _signed(no_id))


def test_stripe_tolerates_non_object_metadata_and_shipping():
    body = _stripe_event(
        "payment_intent.succeeded",
        {"id": "pi_odd", "metadata": "n/a", "shipping": ["x"], "receipt_email": "a@b.co"},
    )
    delta = StripeWebhookAdapter(secret=SECRET).ingest(body, _signed(body))
    assert delta.user_id is None
    assert delta.shipping_address is None
    assert delta.tracking_number is None


def _foxy_body(**overrides) -> bytes:
    payload = {
        "id": 7001,
        "status": "captured",
        "customer_email": "Foxy@Example.com",
        "customer_first_name": "Ann",
        "customer_last_name": "Lee",
        "transaction_total": "27.49",
        "shipping_total": "5.00",
        "currency_code": "usd",
        "items": [{"code": "MUG-1", "name": "Mug", "price": "11.245", "quantity": "2"}],
        "shipping_first_name": "Ann",
        "shipping_last_name": "Lee",
        "shipping_address1": "1 Main St",
        "shipping_city": "Austin",
        "shipping_state": "TX",
        "shipping_postal_code": "78701",
        "shipping_country": "US",
    }
    payload.update(overrides)
    return json.dumps(payload).encode()


def test_foxy_adapter_builds_delta():
    adapter = FoxyWebhookAdapter(secret="foxy-secret")
    delta = adapter.ingest(
        _foxy_body(),
        {"Authorization": "Bearer foxy-secret", "Foxy-Webhook-Event": "transaction/created"},
    )
    assert delta.provider is PaymentProvider.hosted_cart_a
    assert delta.provider_transaction_id == "7001"
    assert delta.status is OrderStatus.processing
    assert delta.total == 2749
    assert delta.shipping_amount == 500
    assert delta.customer_email == "foxy@example.com"
    assert delta.items[0].unit_price == 1125
    assert delta.items[0].quantity == 2
    assert delta.items[0].sku == "MUG-1"
    assert delta.shipping_address.name == "Ann Lee"
    assert delta.shipping_address.zip_code == "78701"
    assert delta.billing_address.name == "Ann Lee"


def test_foxy_event_header_overrides_status():
    adapter = FoxyWebhookAdapter(secret=None)
    delta = adapter.ingest(_foxy_body(), {"Foxy-Webhook-Event": "transaction/refunded"})
    assert delta.status is OrderStatus.refunded
    assert delta.raw_status == "refunded"


def test_foxy_rejections():
    adapter = FoxyWebhookAdapter(secret="foxy-secret")
    with pytest.raises(InvalidSignature):
        adapter.ingest(_foxy_body(), {"Authorization": "wrong"})
    with pytest.raises(UnhandledEventType):
        adapter.ingest(_foxy_body(), {"Authorization": "foxy-secret", "Foxy-Webhook-Event": "customer/created"})
    with pytest.raises(MalformedPayload):
        adapter.ingest(_foxy_body(customer_email=""), {"Authorization": "foxy-secret"})
    with pytest.raises(MalformedPayload):
        adapter.ingest(_foxy_body(transaction_total="abc"), {"Authorization": "foxy-secret"})


def test_ecwid_fulfillment_status_takes_precedence():
    assert resolve_raw_status("PAID", "SHIPPED") == "SHIPPED"
    assert resolve_raw_status("PAID", "AWAITING_PROCESSING") == "PAID"
    assert resolve_raw_status("", "PROCESSING") == "PROCESSING"


def test_ecwid_envelope_and_bare_document():
    adapter = EcwidWebhookAdapter(secret=None)
    order = {
        "orderNumber": 1042,
        "email": "Shop@Example.com",
        "total": 30.5,
        "subtotal": 25.5,
        "currency": "EUR",
        "paymentStatus": "PAID",
        "fulfillmentStatus": "SHIPPED",
        "trackingNumber": "TRK-1",
        "items": [{"productId": 55, "name": "Tee", "price": 12.75, "quantity": 2, "sku": "TEE"}],
        "shippingPerson": {"name": "Bo", "street": "2 Elm", "city": "Paris", "countryCode": "FR"},
    }
    delta = adapter.ingest(json.dumps({"eventType": "order.updated", "data": order}).encode(), {})
    assert delta.provider_transaction_id == "1042"
    assert delta.status is OrderStatus.shipped
    assert delta.total == 3050
    assert delta.subtotal == 2550
    assert delta.tracking_number == "TRK-1"
    assert delta.items[0].product_ref == "55"
    assert delta.shipping_address.country == "FR"
    assert delta.billing_address is None

    bare = adapter.ingest(json.dumps(order).encode(), {})
    assert bare.provider_transaction_id == "1042"


def test_ecwid_rejections():
    adapter = EcwidWebhookAdapter(secret="ecwid-secret")
    with pytest.raises(InvalidSignature):
        adapter.ingest(b"{}", {})
    headers = {"Authorization": "ecwid-secret"}
    with pytest.raises(UnhandledEventType):
        adapter.ingest(json.dumps({"eventType": "product.updated", "data": {}}).encode(), headers)
    with pytest.raises(MalformedPayload):
        adapter.ingest(json.dumps({"orderNumber": 1, "paymentStatus": "PAID"}).encode(), headers)
    with pytest.raises(MalformedPayload):
        adapter.ingest(json.dumps({"eventType": "order.created", "data": "x"}).encode(), headers)
    # 状态更新事件可以不带邮箱
    delta = adapter.ingest(
        json.dumps({"eventType": "order.updated", "data": {"orderId": 9, "newPaymentStatus": "REFUNDED"}}).encode(),
        headers,
    )
    assert delta.status is OrderStatus.refunded


def test_adapters_coerce_numeric_item_text():
    foxy = FoxyWebhookAdapter(secret=None).ingest(
        _foxy_body(items=[{"code": 4455, "name": 42, "price": "3.00", "quantity": 1}]), {}
    )
    assert foxy.items[0].name == "42"
    assert foxy.items[0].sku == "4455"

    ecwid = EcwidWebhookAdapter(secret=None).ingest(
        json.dumps(
            {
                "orderNumber": 77,
                "email": "e@example.com",
                "paymentStatus": "PAID",
                "items": [{"productId": 1, "name": "Tee", "price": 5, "sku": 12345}],
            }
        ).encode(),
        {},
    )
    assert ecwid.items[0].sku == "12345"


def test_adapters_reject_invalid_items_as_malformed():
    with pytest.raises(MalformedPayload):
        FoxyWebhookAdapter(secret=None).ingest(
            _foxy_body(items=[{"code": "A", "price": "1.00", "quantity": "lots"}]), {}
        )
    with pytest.raises(MalformedPayload):
        EcwidWebhookAdapter(secret=None).ingest(
            json.dumps(
                {"orderNumber": 5, "email": "e@example.com", "items": [{"price": 1, "quantity": {"n": 2}}]}
            ).encode(),
            {},
        )
    # 非数组的 items 直接忽略
    delta = FoxyWebhookAdapter(secret=None).ingest(_foxy_body(items=7), {})
    assert delta.items == []


@pytest.mark.parametrize(
    ("value", "expected"),
    [("19.99", 1999), (19.99, 1999), ("0.005", 1), ("19.994", 1999), (None, 0), ("", 0), (3, 300)],
)
def test_to_minor_units(value, expected):
    assert to_minor_units(value) == expected


def test_to_minor_units_rejects_bad_values():
    for bad in ("-1", "NaN", "abc"):
        with pytest.raises(MalformedPayload):
            to_minor_units(bad)


# ---------------------------------------------------------------- routes


def test_stripe_route_end_to_end(client, db, notifier, stripe_secret):
    body = _stripe_event(
        "payment_intent.succeeded",
        {"id": "pi_e2e", "amount_received": 4200, "receipt_email": "e2e@example.com"},
    )
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["created"] is True
    assert data["status"] == "processing"

    # 重复投递：同一订单，不再创建
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.json()["data"]["created"] is False
    assert r.json()["data"]["order_id"] == data["order_id"]

    refund = _stripe_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_e2e"})
    r = client.post("/api/v1/webhooks/stripe", content=refund, headers=_signed(refund))
    assert r.json()["data"]["status"] == "refunded"
    assert notifier.sent == []


def test_stripe_route_signature_failure_is_400(client, stripe_secret):
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_bad"})
    r = client.post(
        "/api/v1/webhooks/stripe", content=body, headers=_signed(body, secret="whsec_wrong")
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400101


def test_stripe_route_malformed_body_is_400(client, stripe_secret):
    body = b"{not json"
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.status_code == 400
    assert r.json()["code"] == 400102


def test_stripe_route_ignores_unhandled_events(client, stripe_secret):
    body = _stripe_event("invoice.paid", {"id": "in_1"})
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.status_code == 200
    assert r.json()["data"] == {"received": True, "ignored": "invoice.paid"}


def test_failed_payment_for_unknown_order_is_accepted(client, stripe_secret):
    body = _stripe_event("payment_intent.payment_failed", {"id": "pi_never"})
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.status_code == 200
    assert r.json()["data"]["order_id"] is None


def test_unexpected_reconcile_error_is_500(client, stripe_secret, monkeypatch):
    def boom(self, delta):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(OrderReconciler, "reconcile", boom)
    body = _stripe_event("payment_intent.succeeded", {"id": "pi_boom"})
    r = client.post("/api/v1/webhooks/stripe", content=body, headers=_signed(body))
    assert r.status_code == 500
    assert r.json()["code"] == 500001


def test_foxy_route_creates_then_ships(client, notifier, monkeypatch):
    monkeypatch.setattr(settings, "FOXY_WEBHOOK_SECRET", "foxy-secret")
    headers = {"Authorization": "foxy-secret", "Foxy-Webhook-Event": "transaction/created"}
    r = client.post("/api/v1/webhooks/foxy", content=_foxy_body(), headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["created"] is True

    headers["Foxy-Webhook-Event"] = "transaction/modified"
    r = client.post(
        "/api/v1/webhooks/foxy",
        content=_foxy_body(status="shipped", tracking_number="FX-1"),
        headers=headers,
    )
    assert r.json()["data"]["status"] == "shipped"
    assert notifier.kinds() == [NotificationKind.shipped]

    r = client.post("/api/v1/webhooks/foxy", content=_foxy_body(), headers={"Authorization": "nope"})
    assert r.status_code == 400


def test_ecwid_route_without_secret_is_accepted(client, monkeypatch):
    monkeypatch.setattr(settings, "ECWID_WEBHOOK_SECRET", None)
    body = json.dumps(
        {"orderNumber": "E-1", "email": "e@example.com", "total": "10.00", "paymentStatus": "AWAITING_PAYMENT"}
    ).encode()
    r = client.post("/api/v1/webhooks/ecwid", content=body)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "pending"


def test_hosted_cart_routes_accept_numeric_item_fields(client, monkeypatch):
    monkeypatch.setattr(settings, "ECWID_WEBHOOK_SECRET", None)
    monkeypatch.setattr(settings, "FOXY_WEBHOOK_SECRET", None)
    ecwid = json.dumps(
        {
            "orderNumber": "E-2",
            "email": "e@example.com",
            "total": "5.00",
            "paymentStatus": "PAID",
            "items": [{"productId": 1, "name": "Tee", "price": 5, "sku": 12345}],
        }
    ).encode()
    r = client.post("/api/v1/webhooks/ecwid", content=ecwid)
    assert r.status_code == 200
    assert r.json()["data"]["created"] is True

    foxy = _foxy_body(id=7002, items=[{"code": "MUG", "name": 42, "price": "1.00", "quantity": 1}])
    r = client.post("/api/v1/webhooks/foxy", content=foxy)
    assert r.status_code == 200


def test_unexpected_ingest_error_is_400(client, monkeypatch):
    monkeypatch.setattr(settings, "ECWID_WEBHOOK_SECRET", None)

    def broken(self, raw_body, headers):
        raise KeyError("items")

    monkeypatch.setattr(EcwidWebhookAdapter, "ingest", broken)
    r = client.post("/api/v1/webhooks/ecwid", content=b"{}")
    assert r.status_code == 400
    assert r.json()["code"] == 400102
