"""
Webhook 事件模型模块

定义支付处理方 webhook 事件的去重记录。
"""
from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, String
from sqlmodel import Field, SQLModel

from creator_ledger.core.snowflake import generate_id

from .base import utc_now


class WebhookEventRecord(SQLModel, table=True):
    """
    支付处理方 Webhook 事件记录

    存储所有收到的 webhook 事件，用于去重和审计。
    通过 external_event_id 唯一性防止重复处理同一事件；
    processed 为 False 的记录在重投时会被再次处理。

    字段说明：
    - external_event_id: 处理方事件 ID（唯一）
    - external_payout_id: 处理方打款 ID
    - external_status: 处理方原始状态
    - payload: 事件完整数据（JSON）
    - processed / processed_at / outcome: 处理结果
    """
    __tablename__ = "webhook_events"

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    external_event_id: str = Field(
        sa_column=Column(String(128), unique=True, index=True, nullable=False)
    )
    external_payout_id: str = Field(sa_column=Column(String(128), index=True, nullable=False))
    external_status: str = Field(max_length=64)
    payload: dict | None = Field(default=None, sa_column=Column(JSON))
    processed: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, default=False)
    )
    outcome: str | None = Field(default=None, max_length=32)
    received_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    processed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
