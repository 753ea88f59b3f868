"""
提现模型模块

定义提现单和提现状态变更历史。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String
from sqlmodel import Field, SQLModel

from creator_ledger.core.snowflake import generate_id
from creator_ledger.enums import HistorySource, PayoutStatus

from .base import MinorUnits, utc_now


class PayoutRequest(SQLModel, table=True):
    """
    提现单模型

    每次提现一条记录，永不删除。提现单 ID 同时作为提交给支付处理方的幂等键。

    字段说明：
    - amount / currency: 提现金额和币种
    - status: 提现状态（requested/submitted/in_transit/paid/failed）
    - reservation_id: 对应的余额预留记录
    - external_payout_id: 支付处理方返回的打款 ID（受理后才有，唯一）
    - external_account_id: 提交时的收款账户快照
    - failure_reason: 失败原因
    - notes: 创作者备注
    - submitted_at / resolved_at: 受理时间 / 终结时间
    """
    __tablename__ = "payout_requests"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    creator_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    amount: Decimal = Field(sa_column=Column(MinorUnits(), nullable=False))
    currency: str = Field(default="USD", max_length=8)
    status: PayoutStatus = Field(
        default=PayoutStatus.requested,
        sa_column=Column(String(16), index=True, nullable=False),
    )
    reservation_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("ledger_reservations.id"), nullable=False, unique=True
        )
    )
    external_payout_id: str | None = Field(
        default=None,
        sa_column=Column(String(128), unique=True, index=True, nullable=True),
    )
    external_account_id: str | None = Field(default=None, max_length=128)
    failure_reason: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=500)

    requested_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    submitted_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    resolved_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )


class PayoutStatusHistory(SQLModel, table=True):
    """提现状态变更历史，每次生效的状态迁移一条"""
    __tablename__ = "payout_status_history"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    payout_id: int = Field(
        sa_column=Column(
            BigInteger,
            ForeignKey("payout_requests.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    from_status: PayoutStatus | None = Field(default=None, sa_column=Column(String(16)))
    to_status: PayoutStatus = Field(sa_column=Column(String(16), nullable=False))
    source: HistorySource = Field(sa_column=Column(String(16), nullable=False))
    external_event_id: str | None = Field(default=None, max_length=128)
    note: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
