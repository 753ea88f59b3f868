"""
Redis 连接模块

Redis 只用于定时任务的分布式锁（多个 worker 实例时保证同一任务只有一个实例执行）。
账本本身不依赖 Redis，所有余额一致性都由数据库条件更新保证。
"""
from __future__ import annotations

import logging
from functools import lru_cache

import redis

from creator_ledger.core.config import settings

logger = logging.getLogger(__name__)

# 只有锁的持有者才能释放
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """获取 Redis 客户端实例（单例，首次使用时才真正建立连接）"""
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        decode_responses=True,
    )


def acquire_lock(client: redis.Redis, lock_key: str, lock_value: str, expire_seconds: int = 60) -> bool:
    """
    获取分布式锁

    Args:
        client: Redis 客户端
        lock_key: 锁键
        lock_value: 锁值（释放时校验）
        expire_seconds: 锁过期时间（秒），防止持有者崩溃后死锁

    Returns:
        是否获取成功
    """
    try:
        return bool(client.set(lock_key, lock_value, ex=expire_seconds, nx=True))
    except redis.RedisError as e:
        logger.error(f"Failed to acquire lock {lock_key}: {e}")
        return False


def release_lock(client: redis.Redis, lock_key: str, lock_value: str) -> bool:
    """释放分布式锁（Lua 脚本保证比较和删除的原子性）"""
    try:
        return client.eval(_RELEASE_LOCK_SCRIPT, 1, lock_key, lock_value) == 1
    except redis.RedisError as e:
        logger.error(f"Failed to release lock {lock_key}: {e}")
        return False
