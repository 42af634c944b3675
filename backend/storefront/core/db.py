"""
数据库连接模块

管理数据库引擎的创建和表结构初始化。
使用 SQLModel 的 create_engine 创建数据库连接池。

重要提示：
- 在 create_all 之前必须导入所有模型（storefront.models），否则表不会被注册
"""
from sqlalchemy import Engine
from sqlmodel import Session, SQLModel, create_engine, select  # SQLModel 的数据库工具

from storefront import models  # noqa: F401  注册所有表到 SQLModel.metadata
from storefront.core.config import settings

# 创建数据库引擎（连接池）
# create_engine 不会立即建立连接，第一次使用时才会连接
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI))


def ping(session: Session) -> None:
    """执行最简单的查询（select 1），验证数据库连接是否可用"""
    session.exec(select(1))


def init_db(db_engine: Engine) -> None:
    """
    初始化数据库表结构

    只创建缺失的表，已存在的表不会被修改。

    Args:
        db_engine: 数据库引擎实例
    """
    SQLModel.metadata.create_all(db_engine)
