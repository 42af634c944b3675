"""
安全模块

负责 JWT 访问令牌的签发。令牌的校验在 storefront.api.deps 中完成。

令牌载荷：
- sub: 用户 ID
- email: 用户邮箱（用于认领游客订单）
- role: 角色（"customer" 或 "admin"）
- exp: 过期时间
"""
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from storefront.core.config import settings

ALGORITHM = "HS256"

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"


def create_access_token(
    subject: str | Any,
    expires_delta: timedelta,
    *,
    email: str | None = None,
    role: str = ROLE_CUSTOMER,
) -> str:
    """
    创建 JWT 访问令牌

    Args:
        subject: 用户标识（写入 sub）
        expires_delta: 有效期
        email: 用户邮箱（可选）
        role: 角色

    Returns:
        编码后的 JWT 字符串
    """
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode: dict[str, Any] = {"exp": expire, "sub": str(subject), "role": role}
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
