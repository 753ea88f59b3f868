"""
应用启动前检查脚本

在 API 或定时任务启动前等待依赖就绪（Docker Compose 中数据库容器可能还在初始化）：
1. 数据库：不断重试，直到能执行 SELECT 1（最多 5 分钟）
2. Redis：只有定时任务依赖它（分布式锁），不可用时只记警告，不阻塞启动

执行流程：prestart -> backend_pre_start -> alembic upgrade head -> initial_data
"""
import logging

import redis
from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import (
    after_log,
    before_log,
    retry,
    stop_after_attempt,
    wait_fixed,
)

from creator_ledger.core.db import engine
from creator_ledger.core.redis import get_redis

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 300 次，每秒一次
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    检查数据库连接，失败时由 tenacity 重试

    Raises:
        Exception: 达到最大重试次数仍无法连接
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def check_redis() -> bool:
    try:
        get_redis().ping()
    except redis.RedisError as e:
        logger.warning(f"Redis is not reachable, scheduled jobs will skip their runs: {e}")
        return False
    return True


def main() -> None:
    logger.info("Waiting for database")
    init(engine)
    check_redis()
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()
