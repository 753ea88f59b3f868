"""
账本模型模块

定义创作者余额账本、收入事件流水和余额预留记录。
三张表都只由 crud/ledger.py 写入。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from creator_ledger.core.snowflake import generate_id
from creator_ledger.enums import ReservationState, RevenueSourceType

from .base import MinorUnits, utc_now


class CreatorLedger(SQLModel, table=True):
    """
    创作者余额账本

    每个创作者一条记录，可用余额 = 累计收入 - 累计已打款 - 预留中。
    所有字段只通过带条件的单条 UPDATE 修改，不做先读后写。

    字段说明：
    - currency: 账本币种（单币种，不做汇率换算）
    - total_earned: 累计收入，等于该创作者所有收入事件金额之和
    - total_paid_out: 累计已打款，只增不减
    - reserved: 已被进行中的提现预留的金额
    - open_reservations: 持有中的预留数量（即未终结的提现数量）
    """
    __tablename__ = "creator_ledgers"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    creator_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )
    currency: str = Field(default="USD", max_length=8)

    total_earned: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(MinorUnits(), nullable=False),
    )
    total_paid_out: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(MinorUnits(), nullable=False),
    )
    reserved: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(MinorUnits(), nullable=False),
    )
    open_reservations: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )

    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def available(self) -> Decimal:
        return self.total_earned - self.total_paid_out - self.reserved


class RevenueEvent(SQLModel, table=True):
    """
    收入事件（只追加，不修改不删除）

    (creator_id, external_reference_id) 唯一，来源服务重复推送同一笔收入时只记一次账。
    """
    __tablename__ = "revenue_events"
    __table_args__ = (
        UniqueConstraint(
            "creator_id", "external_reference_id", name="uq_revenue_event_reference"
        ),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    creator_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    source_type: RevenueSourceType = Field(sa_column=Column(String(32), nullable=False))
    amount: Decimal = Field(sa_column=Column(MinorUnits(), nullable=False))
    currency: str = Field(default="USD", max_length=8)
    external_reference_id: str = Field(sa_column=Column(String(128), nullable=False))
    occurred_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class LedgerReservation(SQLModel, table=True):
    """
    余额预留记录

    提现时创建（held），打款成功后结算（finalized），失败后释放（released）。
    结算和释放都只对 held 状态生效，重复调用不会重复记账。
    """
    __tablename__ = "ledger_reservations"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    creator_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    amount: Decimal = Field(sa_column=Column(MinorUnits(), nullable=False))
    state: ReservationState = Field(
        default=ReservationState.held,
        sa_column=Column(String(16), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    resolved_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
