"""
创作者账户模型模块

记录创作者的打款账户及其外部认证状态。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, String
from sqlmodel import Field, SQLModel

from creator_ledger.core.snowflake import generate_id
from creator_ledger.enums import VerificationState

from .base import utc_now


class CreatorAccount(SQLModel, table=True):
    """
    创作者账户模型

    每个创作者一条记录。认证状态由外部认证服务回调驱动，
    只有 verified 且未被停用的账户才能发起提现。账户不会被删除，只会被停用。

    字段说明：
    - creator_id: 创作者 ID（来自上游身份服务，唯一）
    - external_account_id: 支付处理方侧的收款账户 ID（开始认证后才有）
    - verification_state: 认证状态（unset/pending/verified/failed）
    - verification_note: 认证服务最近一次给出的说明
    - is_disabled: 是否停用（软删除）
    - verified_at: 最近一次认证通过的时间
    """
    __tablename__ = "creator_accounts"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    creator_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )
    external_account_id: str | None = Field(default=None, max_length=128)
    verification_state: VerificationState = Field(
        default=VerificationState.unset,
        sa_column=Column(String(16), nullable=False),
    )
    verification_note: str | None = Field(default=None, max_length=255)
    is_disabled: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, default=False)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    verified_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
