"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
使用 Pydantic 进行数据验证和序列化。

关键概念：
- BaseModel: Pydantic 的模型基类，用于数据验证
- Field: 字段验证器，定义字段的约束（长度、范围等）
- 这些模型不是数据库表，只用于 API 数据交换
- 金额统一使用 Decimal，序列化为字符串，避免浮点误差
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from creator_ledger.enums import (
    HistorySource,
    PayoutStatus,
    ReconciliationOutcome,
    RevenueSourceType,
    VerificationState,
)

# ============================================================
# 通用响应模型
# ============================================================


class TokenPayload(BaseModel):
    """
    JWT Token 载荷模型

    sub (subject) 存储创作者 ID。
    """
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    所有 API 响应都使用这个格式，包含：
    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述）
    - data: 数据（成功时返回业务数据，错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 402101, "message": "Insufficient available balance", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ============================================================
# 收入
# ============================================================


class RevenueEventCreate(BaseModel):
    """
    收入事件上报请求模型

    由打赏、票务、预约、付费内容等收入来源服务调用。
    """
    creator_id: str = Field(min_length=1, max_length=64)
    source_type: RevenueSourceType
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=8)
    external_reference_id: str = Field(min_length=1, max_length=128)
    occurred_at: datetime | None = None


class RevenueEventPublic(_OrmModel):
    id: int
    creator_id: str
    source_type: RevenueSourceType
    amount: Decimal
    currency: str
    external_reference_id: str
    occurred_at: datetime
    created_at: datetime


class RevenueEventRecorded(BaseModel):
    """收入上报结果；duplicate 为 True 表示该事件之前已记账"""
    duplicate: bool = False
    event: RevenueEventPublic


class RevenueEventsData(BaseModel):
    data: list[RevenueEventPublic]
    count: int


class BalanceView(BaseModel):
    """
    余额视图

    available = total_earned - total_paid_out - reserved
    """
    available: Decimal
    reserved: Decimal
    total_earned: Decimal
    total_paid_out: Decimal
    currency: str


# ============================================================
# 认证
# ============================================================


class VerificationBeginRequest(BaseModel):
    external_account_id: str | None = Field(default=None, min_length=1, max_length=128)


class VerificationResultRequest(BaseModel):
    """外部认证服务回调的认证结果"""
    creator_id: str = Field(min_length=1, max_length=64)
    result: VerificationState
    note: str | None = Field(default=None, max_length=255)


class AccountDisableRequest(BaseModel):
    creator_id: str = Field(min_length=1, max_length=64)
    note: str | None = Field(default=None, max_length=255)


class AccountPublic(_OrmModel):
    creator_id: str
    external_account_id: str | None = None
    verification_state: VerificationState
    verification_note: str | None = None
    is_disabled: bool
    verified_at: datetime | None = None
    updated_at: datetime


class EligibilityView(BaseModel):
    """
    提现资格视图

    reason 为第一个不满足的条件（eligible 时为 None），reasons 为全部原因。
    """
    eligible: bool
    reason: str | None = None
    reasons: list[str] = []
    verification_state: VerificationState
    available_balance: Decimal
    minimum_amount: Decimal
    pending_payouts_count: int
    max_pending_payouts: int
    currency: str


# ============================================================
# 提现
# ============================================================


class PayoutCreateRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=8)
    notes: str | None = Field(default=None, max_length=500)


class PayoutPublic(_OrmModel):
    id: int
    amount: Decimal
    currency: str
    status: PayoutStatus
    external_payout_id: str | None = None
    failure_reason: str | None = None
    notes: str | None = None
    requested_at: datetime
    submitted_at: datetime | None = None
    resolved_at: datetime | None = None
    updated_at: datetime


class PayoutHistoryPublic(_OrmModel):
    from_status: PayoutStatus | None = None
    to_status: PayoutStatus
    source: HistorySource
    note: str | None = None
    created_at: datetime


class PayoutDetail(PayoutPublic):
    history: list[PayoutHistoryPublic] = []


class PayoutsData(BaseModel):
    data: list[PayoutPublic]
    count: int


class StalePayoutPublic(PayoutPublic):
    creator_id: str


class StalePayoutsData(BaseModel):
    data: list[StalePayoutPublic]
    count: int
    older_than_hours: int
    requested_older_than_minutes: int


# ============================================================
# 支付处理方 Webhook
# ============================================================


class ProcessorWebhookEvent(BaseModel):
    """
    支付处理方状态回调

    payout_id 为处理方侧的打款 ID（提交时处理方返回的 id）。
    """
    event_id: str = Field(min_length=1, max_length=128)
    payout_id: str = Field(min_length=1, max_length=128)
    status: str = Field(min_length=1, max_length=64)
    amount: Decimal | None = None
    currency: str | None = None
    occurred_at: datetime | None = None


class WebhookAck(BaseModel):
    outcome: ReconciliationOutcome
    payout_id: int | None = None
    payout_status: PayoutStatus | None = None
