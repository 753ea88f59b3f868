"""
运维路由模块

- GET /ops/stale-payouts: 滞留提现（已提交但长时间没有状态更新，通常是回调丢失；
  或长时间停在 requested，处理方可能已受理但本地未记录）
"""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Query

from creator_ledger import crud
from creator_ledger.api.deps import InternalCaller, SessionDep
from creator_ledger.api.schemas import ApiEnvelope, StalePayoutPublic, StalePayoutsData
from creator_ledger.core.config import settings

router = APIRouter(prefix="/ops", tags=["ops"])


@router.get("/stale-payouts", response_model=ApiEnvelope, dependencies=[InternalCaller])
def stale_payouts(
    session: SessionDep,
    older_than_hours: int | None = Query(default=None, ge=1),
) -> ApiEnvelope:
    """
    滞留提现列表

    请求路径: GET /api/v1/ops/stale-payouts?older_than_hours=72
    """
    hours = older_than_hours or settings.STALE_PAYOUT_AFTER_HOURS
    minutes = settings.STALE_REQUESTED_AFTER_MINUTES
    rows = crud.find_stale_payouts(
        session=session,
        older_than=timedelta(hours=hours),
        requested_older_than=timedelta(minutes=minutes),
    )
    data = [StalePayoutPublic.model_validate(row) for row in rows]
    return ApiEnvelope(
        data=StalePayoutsData(
            data=data,
            count=len(data),
            older_than_hours=hours,
            requested_older_than_minutes=minutes,
        )
    )
