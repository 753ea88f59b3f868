"""
支付处理方 Webhook 路由模块

签名基于原始请求体计算，所以先读取原始字节验签，再解析 JSON。

返回约定（处理方对非 2xx 响应会重投）：
- 已生效 / 重复 / 过期 / 无法识别的状态：200
- 找不到对应提现单：409，等待处理方重投
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from creator_ledger.api.deps import SessionDep
from creator_ledger.api.errors import AppError
from creator_ledger.api.schemas import ApiEnvelope, ProcessorWebhookEvent, WebhookAck
from creator_ledger.core.security import verify_webhook_signature
from creator_ledger.enums import ReconciliationOutcome
from creator_ledger.services import reconciliation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/processor", response_model=ApiEnvelope)
async def processor_webhook(
    request: Request,
    session: SessionDep,
    x_processor_signature: str | None = Header(default=None),
):
    """
    接收支付处理方的提现状态事件

    请求路径: POST /api/v1/webhooks/processor
    """
    raw = await request.body()
    if not verify_webhook_signature(raw, x_processor_signature):
        logger.warning("Processor webhook rejected: invalid signature")
        raise AppError(code=401101, message="Invalid webhook signature", status_code=401)

    try:
        event = ProcessorWebhookEvent.model_validate_json(raw)
    except ValidationError:
        raise AppError(code=400105, message="Invalid webhook payload", status_code=400)

    # 数据库操作是同步的，放到线程池执行，避免阻塞事件循环
    result = await run_in_threadpool(
        reconciliation.handle_external_event,
        session=session,
        external_event_id=event.event_id,
        external_payout_id=event.payout_id,
        external_status=event.status,
        payload=event.model_dump(mode="json"),
        amount=event.amount,
        currency=event.currency,
    )
    ack = WebhookAck(
        outcome=result.outcome,
        payout_id=result.payout.id if result.payout else None,
        payout_status=result.payout.status if result.payout else None,
    )
    if result.outcome == ReconciliationOutcome.unknown_payout:
        return JSONResponse(
            status_code=409,
            content={
                "code": 409104,
                "message": "Unknown payout, retry later",
                "data": ack.model_dump(mode="json"),
            },
        )
    return ApiEnvelope(data=ack)
