"""
基础模型模块

定义所有模型共用的基础类和工具函数。
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """
    获取当前 UTC 时间

    Returns:
        当前 UTC 时区的日期时间对象
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    将无时区的日期时间视为 UTC

    SQLite 不保存时区信息，读回来的是 naive datetime；
    与带时区的时间比较前需要先补上 UTC。
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    """生成内部主键（32 位十六进制字符串）"""
    return uuid4().hex


__all__ = ["SQLModel", "utc_now", "ensure_utc", "new_id"]
