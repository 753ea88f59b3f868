"""
定时任务逻辑
"""

import logging
from uuid import uuid4

import redis
from sqlalchemy import Engine
from sqlmodel import Session

from creator_ledger import crud
from creator_ledger.core.db import engine as default_engine
from creator_ledger.core.redis import acquire_lock, get_redis, release_lock

logger = logging.getLogger(__name__)

STALE_AUDIT_LOCK_KEY = "payouts:stale_audit:lock"
STALE_AUDIT_LOCK_TTL_SECONDS = 60 * 10


def audit_stale_payouts(
    *, db_engine: Engine | None = None, redis_client: redis.Redis | None = None
) -> list[int] | None:
    """
    每小时检查一次滞留提现

    已提交但超过 STALE_PAYOUT_AFTER_HOURS 没有状态更新的提现，以及超过
    STALE_REQUESTED_AFTER_MINUTES 仍停在 requested 的提现，逐条记 WARNING 日志，
    由人工与支付处理方核对。不自动修改状态。

    Returns:
        滞留提现的 ID 列表；未拿到锁（其他实例正在执行）时返回 None
    """
    redis_client = redis_client or get_redis()
    lock_value = str(uuid4())
    acquired = acquire_lock(
        redis_client,
        STALE_AUDIT_LOCK_KEY,
        lock_value,
        expire_seconds=STALE_AUDIT_LOCK_TTL_SECONDS,
    )
    if not acquired:
        logger.info("Stale payout audit already running, skip this run.")
        return None

    try:
        with Session(db_engine or default_engine) as session:
            stale = crud.find_stale_payouts(session=session)
            for payout in stale:
                logger.warning(
                    "Stale payout: id=%s creator=%s status=%s external_id=%s updated_at=%s",
                    payout.id,
                    payout.creator_id,
                    payout.status,
                    payout.external_payout_id,
                    payout.updated_at,
                )
            logger.info("Stale payout audit finished: %d stale", len(stale))
            return [payout.id for payout in stale]
    finally:
        release_lock(redis_client, STALE_AUDIT_LOCK_KEY, lock_value)
