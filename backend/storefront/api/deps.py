"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

- SessionDep: 每个请求一个数据库会话，请求结束自动关闭
- CurrentUser / CurrentAdmin: 从 Bearer JWT 解析出的当前用户（管理员需 role=admin）
- OptionalUser: 可选登录（游客结账）
- NotifierDep / StripeClientDep: 外部协作者，测试时通过 dependency_overrides 替换
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from storefront.api.schemas import TokenPayload
from storefront.core import security
from storefront.core.config import settings
from storefront.core.db import engine
from storefront.integrations.stripe_client import StripeClient
from storefront.services.notifications import Notifier, get_notifier

reusable_oauth2 = HTTPBearer()
optional_oauth2 = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    Yields:
        Session: 数据库会话对象
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]
OptionalTokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(optional_oauth2)]


def _decode(token: str) -> TokenPayload:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[security.ALGORITHM])
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return token_data


def get_current_user(token: TokenDep) -> TokenPayload:
    """
    获取当前登录用户（依赖注入）

    用户身份完全来自 JWT 载荷，不查询数据库。

    Raises:
        HTTPException: token 无效或缺少 sub 时返回 401
    """
    return _decode(token.credentials)


CurrentUser = Annotated[TokenPayload, Depends(get_current_user)]


def get_current_admin(current_user: CurrentUser) -> TokenPayload:
    if current_user.role != security.ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )
    return current_user


CurrentAdmin = Annotated[TokenPayload, Depends(get_current_admin)]


def get_optional_user(token: OptionalTokenDep) -> TokenPayload | None:
    """可选登录：没有 token 时返回 None，带了无效 token 仍然返回 401"""
    if token is None:
        return None
    return _decode(token.credentials)


OptionalUser = Annotated[TokenPayload | None, Depends(get_optional_user)]

NotifierDep = Annotated[Notifier, Depends(get_notifier)]


def get_stripe_client() -> StripeClient:
    return StripeClient()


StripeClientDep = Annotated[StripeClient, Depends(get_stripe_client)]
