"""
数据库连接模块

管理数据库引擎的创建。表结构通过 Alembic 迁移管理，不要在这里创建表。
使用前确保已导入所有模型（creator_ledger.models），否则 SQLModel 的元数据不完整。
"""
from sqlmodel import create_engine

from creator_ledger.core.config import settings

# pool_pre_ping: 取连接前先探活，避免数据库重启后拿到失效连接
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)
