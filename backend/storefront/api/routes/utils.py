"""
工具路由模块

提供健康检查等系统工具类端点。
"""
from fastapi import APIRouter

from storefront.api.deps import SessionDep
from storefront.core.db import ping

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
def health_check(session: SessionDep) -> bool:
    """
    健康检查端点（同时检查数据库连接）

    请求路径: GET /api/v1/utils/health-check/
    """
    ping(session)
    return True
