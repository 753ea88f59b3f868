"""
收入路由模块

- POST /revenue/events: 收入来源服务上报收入（内部令牌）
- GET /revenue/balance: 当前创作者余额
- GET /revenue/events: 当前创作者收入流水（分页）
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from creator_ledger import crud
from creator_ledger.api.deps import CurrentCreator, InternalCaller, SessionDep
from creator_ledger.api.errors import DuplicateEventError
from creator_ledger.api.schemas import (
    ApiEnvelope,
    RevenueEventCreate,
    RevenueEventPublic,
    RevenueEventRecorded,
    RevenueEventsData,
)
from creator_ledger.services import queries

router = APIRouter(prefix="/revenue", tags=["revenue"])


@router.post("/events", response_model=ApiEnvelope, dependencies=[InternalCaller])
def record_event(session: SessionDep, body: RevenueEventCreate) -> ApiEnvelope:
    """
    记录一笔收入

    同一 (creator_id, external_reference_id) 重复上报时幂等返回已有记录，
    duplicate 为 True，不会重复记账。

    请求路径: POST /api/v1/revenue/events
    """
    try:
        event = crud.record_event(
            session=session,
            creator_id=body.creator_id,
            amount=body.amount,
            currency=body.currency,
            source_type=body.source_type,
            external_reference_id=body.external_reference_id,
            occurred_at=body.occurred_at,
        )
    except DuplicateEventError as e:
        return ApiEnvelope(
            data=RevenueEventRecorded(
                duplicate=True, event=RevenueEventPublic.model_validate(e.existing)
            )
        )
    return ApiEnvelope(
        data=RevenueEventRecorded(event=RevenueEventPublic.model_validate(event))
    )


@router.get("/balance", response_model=ApiEnvelope)
def balance(session: SessionDep, creator_id: CurrentCreator) -> ApiEnvelope:
    """
    获取余额

    请求路径: GET /api/v1/revenue/balance
    """
    return ApiEnvelope(data=queries.get_balance(session=session, creator_id=creator_id))


@router.get("/events", response_model=ApiEnvelope)
def events(
    session: SessionDep,
    creator_id: CurrentCreator,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    收入流水（分页，按发生时间倒序）

    请求路径: GET /api/v1/revenue/events?page=1&page_size=20
    """
    rows, count = queries.list_revenue_events(
        session=session, creator_id=creator_id, page=page, page_size=page_size
    )
    return ApiEnvelope(data=RevenueEventsData(data=rows, count=count))
