"""
邮件 API 集成模块

通过 HTTP 邮件服务（Resend 兼容接口）发送事务邮件：
    POST {EMAIL_API_URL}
    Authorization: Bearer {EMAIL_API_KEY}
    {"from": ..., "to": [...], "subject": ..., "text": ...}

支持模拟模式（mock），本地开发和测试时只记录日志，不真正发送。
传输层错误（连接失败、超时）会按 EMAIL_MAX_ATTEMPTS 重试。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.core.config import settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """邮件发送失败（由通知分发器捕获并记录，不会向上传播）"""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    tags: dict[str, str] = field(default_factory=dict)


class EmailClient:
    """HTTP 邮件 API 客户端"""

    def __init__(
        self,
        *,
        api_url: str | None = None,
        api_key: str | None = None,
        mock: bool | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_url = api_url or settings.EMAIL_API_URL
        self._api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self._mock = settings.EMAIL_MOCK if mock is None else mock
        self._transport = transport  # 测试时注入 httpx.MockTransport

    def _sender(self) -> str:
        if settings.EMAILS_FROM_NAME:
            return f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"
        return settings.EMAILS_FROM_EMAIL

    def send(self, message: EmailMessage) -> None:
        """
        发送一封邮件

        Raises:
            NotificationError: 未配置密钥、收件人为空、API 返回非 2xx 或重试后仍无法连接
        """
        if not message.to:
            raise NotificationError("Recipient address is empty")

        if self._mock:
            logger.info("Email (mock) to=%s subject=%r", message.to, message.subject)
            return

        if not self._api_key:
            raise NotificationError("EMAIL_API_KEY not configured")

        payload = {
            "from": self._sender(),
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
            "tags": [{"name": k, "value": v} for k, v in message.tags.items()],
        }
        try:
            response = self._post(payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Email API unreachable: {e}") from e

        if response.status_code >= 300:
            raise NotificationError(
                f"Email API error: {response.status_code} {response.text[:200]}"
            )
        logger.info("Email sent to=%s subject=%r", message.to, message.subject)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.EMAIL_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    def _post(self, payload: dict) -> httpx.Response:
        with httpx.Client(timeout=settings.EMAIL_TIMEOUT_SECONDS, transport=self._transport) as client:
            return client.post(
                self._api_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
