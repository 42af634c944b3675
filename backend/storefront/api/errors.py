"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有请求级别的业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。

异常分类：
- AuthenticationError: 签名/凭证错误（拒绝，无任何副作用）
  - InvalidSignature: Webhook 签名校验失败
- PayloadValidationError: 请求体格式错误或缺少必填字段（拒绝，无任何副作用）
  - MalformedPayload: Webhook 请求体无法解析为订单变更
- UnhandledEventType: 无需处理的 Webhook 事件类型（接受，不做任何事）
- ConflictError: 唯一约束冲突
  - DuplicateKeyError: 并发创建同一订单时落败（对账器会改为重新读取）
"""
from __future__ import annotations


class AppError(Exception):
    """
    应用自定义异常类

    用于业务逻辑中的错误处理，包含：
    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息（用户友好的提示）
    - status_code: HTTP 状态码（400, 404, 500 等）

    使用示例：
        raise AppError(code=404301, message="Order not found", status_code=404)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class AuthenticationError(AppError):
    def __init__(self, message: str = "Unauthorized", *, code: int = 401001, status_code: int = 401) -> None:
        super().__init__(code=code, message=message, status_code=status_code)


class PayloadValidationError(AppError):
    def __init__(self, message: str = "Invalid payload", *, code: int = 400001, status_code: int = 400) -> None:
        super().__init__(code=code, message=message, status_code=status_code)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", *, code: int = 409001) -> None:
        super().__init__(code=code, message=message, status_code=409)


class DuplicateKeyError(ConflictError):
    """订单 (provider, provider_transaction_id) 已存在"""

    def __init__(self, provider: str, provider_transaction_id: str) -> None:
        super().__init__(
            f"Order already exists for {provider}:{provider_transaction_id}", code=409101
        )
        self.provider = provider
        self.provider_transaction_id = provider_transaction_id


class IngestError(AppError):
    """
    Webhook 接入错误基类

    签名错误和格式错误都返回 400：这类错误重试也不会成功，
    不应该让支付渠道反复重投。
    """


class InvalidSignature(IngestError, AuthenticationError):
    def __init__(self, message: str = "Invalid signature") -> None:
        AuthenticationError.__init__(self, message, code=400101, status_code=400)


class MalformedPayload(IngestError, PayloadValidationError):
    def __init__(self, message: str = "Malformed webhook payload") -> None:
        PayloadValidationError.__init__(self, message, code=400102, status_code=400)


class UnhandledEventType(IngestError):
    """渠道推送了不需要处理的事件类型（路由层以 200 接受）"""

    def __init__(self, event_type: str) -> None:
        super().__init__(code=0, message=f"Unhandled event type: {event_type}", status_code=200)
        self.event_type = event_type


def order_not_found() -> AppError:
    """创建"订单不存在"异常（便捷函数）"""
    return AppError(code=404301, message="Order not found", status_code=404)


def coupon_not_found() -> AppError:
    """创建"优惠券不存在"异常（便捷函数）"""
    return AppError(code=404401, message="Coupon not found", status_code=404)
