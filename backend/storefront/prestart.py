"""
应用启动前检查脚本

等待数据库就绪，然后创建缺失的表。
部署时在启动 API 之前运行：

    python -m storefront.prestart
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from storefront.core.config import settings
from storefront.core.db import engine, init_db, ping

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 每秒一次，最多等 5 分钟
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def wait_for_db(db_engine: Engine) -> None:
    """
    检查数据库连接，失败时由 tenacity 重试

    Raises:
        Exception: 达到最大重试次数仍无法连接
    """
    try:
        with Session(db_engine) as session:
            ping(session)
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logger.info("Waiting for database")
    wait_for_db(engine)
    init_db(engine)
    logger.info("Database ready")


if __name__ == "__main__":  # pragma: no cover
    main()
