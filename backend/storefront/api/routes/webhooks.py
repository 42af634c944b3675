"""
支付渠道 Webhook 路由模块

三个渠道各一个端点，处理流程相同：
    原始请求体 → 适配器 ingest（验签 + 解析）→ 对账器 reconcile → 200

响应约定：
- 成功、无需处理的事件、无需创建订单、被状态机跳过：200
- 签名错误 / 请求体格式错误：400（渠道重试也不会成功）
- 对账过程中的意外错误：500（渠道会重投，幂等保证重投安全）
"""
from __future__ import annotations

import logging
from collections.abc import Mapping

from fastapi import APIRouter, Request
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import NotifierDep, SessionDep
from storefront.api.errors import AppError, MalformedPayload, UnhandledEventType
from storefront.api.schemas import ApiEnvelope
from storefront.crud import OrderRepository
from storefront.enums import PaymentProvider
from storefront.services.notifications import Notifier
from storefront.services.reconciler import OrderReconciler
from storefront.services.webhooks import build_adapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def process_webhook(
    provider: PaymentProvider,
    raw_body: bytes,
    headers: Mapping[str, str],
    session: Session,
    notifier: Notifier,
) -> ApiEnvelope:
    adapter = build_adapter(provider)
    try:
        delta = adapter.ingest(raw_body, headers)
    except UnhandledEventType as e:
        logger.info("Ignoring %s webhook event %s", provider.value, e.event_type)
        return ApiEnvelope(data={"received": True, "ignored": e.event_type})
    except AppError:
        raise
    except Exception as e:
        # 同一请求体重投也不会成功，按格式错误拒绝
        logger.exception("Unparseable %s webhook payload", provider.value)
        raise MalformedPayload(f"Unparseable payload: {type(e).__name__}") from e

    reconciler = OrderReconciler(OrderRepository(session), notifier)
    try:
        result = reconciler.reconcile(delta)
    except AppError:
        raise
    except Exception:
        logger.exception(
            "Failed to reconcile %s webhook for %s",
            provider.value,
            delta.provider_transaction_id,
        )
        session.rollback()
        raise AppError(code=500001, message="Webhook processing failed", status_code=500)

    order = result.order
    return ApiEnvelope(
        data={
            "received": True,
            "order_id": order.id if order else None,
            "status": order.status if order else None,
            "created": result.created,
            "status_changed": result.status_changed,
        }
    )


@router.post("/stripe", response_model=ApiEnvelope)
async def stripe_webhook(request: Request, session: SessionDep, notifier: NotifierDep) -> ApiEnvelope:
    """
    银行卡支付（Stripe）Webhook

    请求路径: POST /api/v1/webhooks/stripe
    """
    raw_body = await request.body()
    return await run_in_threadpool(
        process_webhook, PaymentProvider.card, raw_body, request.headers, session, notifier
    )


@router.post("/foxy", response_model=ApiEnvelope)
async def foxy_webhook(request: Request, session: SessionDep, notifier: NotifierDep) -> ApiEnvelope:
    """
    托管购物车 A（Foxy）Webhook

    请求路径: POST /api/v1/webhooks/foxy
    """
    raw_body = await request.body()
    return await run_in_threadpool(
        process_webhook, PaymentProvider.hosted_cart_a, raw_body, request.headers, session, notifier
    )


@router.post("/ecwid", response_model=ApiEnvelope)
async def ecwid_webhook(request: Request, session: SessionDep, notifier: NotifierDep) -> ApiEnvelope:
    """
    托管购物车 B（Ecwid）Webhook

    请求路径: POST /api/v1/webhooks/ecwid
    """
    raw_body = await request.body()
    return await run_in_threadpool(
        process_webhook, PaymentProvider.hosted_cart_b, raw_body, request.headers, session, notifier
    )
