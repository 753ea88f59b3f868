"""
提现路由模块

- POST /payouts/request: 发起提现
- GET /payouts/list: 提现列表（可按状态过滤）
- GET /payouts/{payout_id}: 提现详情（含状态历史）
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from creator_ledger.api.deps import CurrentCreator, SessionDep
from creator_ledger.api.schemas import (
    ApiEnvelope,
    PayoutCreateRequest,
    PayoutPublic,
    PayoutsData,
)
from creator_ledger.enums import PayoutStatus
from creator_ledger.services import payout_service, queries

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post("/request", response_model=ApiEnvelope)
def request_payout(
    session: SessionDep, creator_id: CurrentCreator, body: PayoutCreateRequest
) -> ApiEnvelope:
    """
    发起提现

    成功时返回 submitted 状态的提现单。处理方不可用（503）或拒绝（502）时，
    提现单标记为 failed，预留余额已经释放。

    请求路径: POST /api/v1/payouts/request
    """
    payout = payout_service.request_payout(
        session=session,
        creator_id=creator_id,
        amount=body.amount,
        currency=body.currency,
        notes=body.notes,
    )
    return ApiEnvelope(data=PayoutPublic.model_validate(payout))


@router.get("/list", response_model=ApiEnvelope)
def list_payouts(
    session: SessionDep,
    creator_id: CurrentCreator,
    status: PayoutStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    提现列表（分页，按创建时间倒序）

    请求路径: GET /api/v1/payouts/list?status=submitted&page=1&page_size=20
    """
    rows, count = queries.list_payouts(
        session=session, creator_id=creator_id, status=status, page=page, page_size=page_size
    )
    data = [PayoutPublic.model_validate(row) for row in rows]
    return ApiEnvelope(data=PayoutsData(data=data, count=count))


@router.get("/{payout_id}", response_model=ApiEnvelope)
def get_payout(session: SessionDep, creator_id: CurrentCreator, payout_id: int) -> ApiEnvelope:
    """请求路径: GET /api/v1/payouts/{payout_id}"""
    return ApiEnvelope(
        data=queries.get_payout(session=session, creator_id=creator_id, payout_id=payout_id)
    )
