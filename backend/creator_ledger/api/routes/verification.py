"""
认证路由模块

- POST /verification/begin: 创作者开始打款账户认证
- GET /verification/eligibility: 提现资格
- POST /verification/result: 外部认证服务回调结果（内部令牌）
- POST /verification/disable: 停用账户（内部令牌）
"""
from __future__ import annotations

from fastapi import APIRouter

from creator_ledger import crud
from creator_ledger.api.deps import CurrentCreator, InternalCaller, SessionDep
from creator_ledger.api.schemas import (
    AccountDisableRequest,
    AccountPublic,
    ApiEnvelope,
    VerificationBeginRequest,
    VerificationResultRequest,
)
from creator_ledger.services import queries

router = APIRouter(prefix="/verification", tags=["verification"])


@router.post("/begin", response_model=ApiEnvelope)
def begin(
    session: SessionDep, creator_id: CurrentCreator, body: VerificationBeginRequest
) -> ApiEnvelope:
    """
    开始认证

    新账户或认证失败的账户进入 pending；已在 pending/verified 的账户保持不变。

    请求路径: POST /api/v1/verification/begin
    """
    account = crud.begin_verification(
        session=session, creator_id=creator_id, external_account_id=body.external_account_id
    )
    return ApiEnvelope(data=AccountPublic.model_validate(account))


@router.get("/eligibility", response_model=ApiEnvelope)
def eligibility(session: SessionDep, creator_id: CurrentCreator) -> ApiEnvelope:
    """请求路径: GET /api/v1/verification/eligibility"""
    return ApiEnvelope(data=queries.get_eligibility(session=session, creator_id=creator_id))


@router.post("/result", response_model=ApiEnvelope, dependencies=[InternalCaller])
def result(session: SessionDep, body: VerificationResultRequest) -> ApiEnvelope:
    """
    认证结果回调

    非法迁移（如 unset -> verified）返回 409。

    请求路径: POST /api/v1/verification/result
    """
    account = crud.apply_verification_result(
        session=session, creator_id=body.creator_id, result=body.result, note=body.note
    )
    return ApiEnvelope(data=AccountPublic.model_validate(account))


@router.post("/disable", response_model=ApiEnvelope, dependencies=[InternalCaller])
def disable(session: SessionDep, body: AccountDisableRequest) -> ApiEnvelope:
    """请求路径: POST /api/v1/verification/disable"""
    account = crud.disable_account(session=session, creator_id=body.creator_id, note=body.note)
    return ApiEnvelope(data=AccountPublic.model_validate(account))
