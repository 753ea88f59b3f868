"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- account.py: 创作者账户与认证状态
- ledger.py: 余额账本、收入事件、余额预留
- payout.py: 提现单与状态历史
- webhook.py: 支付处理方 webhook 事件
"""
from sqlmodel import SQLModel

from .account import CreatorAccount
from .base import MinorUnits, utc_now
from .ledger import CreatorLedger, LedgerReservation, RevenueEvent
from .payout import PayoutRequest, PayoutStatusHistory
from .webhook import WebhookEventRecord

__all__ = [
    "SQLModel",
    "utc_now",
    "MinorUnits",
    "CreatorAccount",
    "CreatorLedger",
    "RevenueEvent",
    "LedgerReservation",
    "PayoutRequest",
    "PayoutStatusHistory",
    "WebhookEventRecord",
]
