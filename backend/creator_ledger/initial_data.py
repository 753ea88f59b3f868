"""
初始数据脚本

在数据库迁移完成后执行。账本和创作者账户都在首次使用时创建，不需要种子数据，
这里只校验迁移后的表结构与模型一致（缺表时报错，提醒先执行 alembic upgrade head）。
"""
import logging

from sqlalchemy import inspect
from sqlmodel import SQLModel

import creator_ledger.models  # noqa: F401  注册所有表
from creator_ledger.core.db import engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def check_tables() -> None:
    existing = set(inspect(engine).get_table_names())
    missing = sorted(set(SQLModel.metadata.tables) - existing)
    if missing:
        raise RuntimeError(f"Missing tables {missing}, run `alembic upgrade head` first")


def main() -> None:
    logger.info("Checking database schema")
    check_tables()
    logger.info("Database schema is up to date")


if __name__ == "__main__":  # pragma: no cover
    main()
