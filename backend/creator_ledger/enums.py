"""
枚举类型定义模块

定义账本、认证、提现和对账中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串（直接入库），又具有枚举的特性。
"""
from enum import Enum


class VerificationState(str, Enum):
    """
    创作者打款账户认证状态

    - unset: 尚未开始认证
    - pending: 已提交，等待外部认证结果
    - verified: 认证通过，可以提现
    - failed: 认证失败，可重新发起
    """
    unset = "unset"
    pending = "pending"
    verified = "verified"
    failed = "failed"


class RevenueSourceType(str, Enum):
    """
    收入来源类型

    - tip: 打赏
    - ticket_sale: 活动门票
    - booking: 服务预约
    - content_purchase: 付费内容
    """
    tip = "tip"
    ticket_sale = "ticket_sale"
    booking = "booking"
    content_purchase = "content_purchase"


class PayoutStatus(str, Enum):
    """
    提现单状态

    - requested: 已创建，余额已预留，尚未提交给支付处理方
    - submitted: 支付处理方已受理
    - in_transit: 打款途中
    - paid: 已到账（终态）
    - failed: 失败，预留余额已释放（终态）
    """
    requested = "requested"
    submitted = "submitted"
    in_transit = "in_transit"
    paid = "paid"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PayoutStatus.paid, PayoutStatus.failed)


class ReservationState(str, Enum):
    """余额预留状态：held 持有中，released 已释放回可用余额，finalized 已结算为已打款"""
    held = "held"
    released = "released"
    finalized = "finalized"


class HistorySource(str, Enum):
    """提现状态变更来源"""
    handler = "handler"  # 提现请求处理流程
    webhook = "webhook"  # 支付处理方回调


class ReconciliationOutcome(str, Enum):
    """
    Webhook 事件处理结果

    - applied: 状态变更已生效
    - duplicate: 事件已处理过，忽略
    - stale: 乱序或过期的状态，按状态机不允许，忽略
    - ignored: 无法识别的外部状态
    - unknown_payout: 找不到对应的提现单，等待重投
    """
    applied = "applied"
    duplicate = "duplicate"
    stale = "stale"
    ignored = "ignored"
    unknown_payout = "unknown_payout"
