"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。

错误码规则：前三位为 HTTP 语义，后三位为业务序号
- 400xxx: 请求参数/提现规则校验失败
- 402xxx: 余额不足（HTTP 仍返回 400）
- 403xxx: 账户未认证
- 404xxx: 资源不存在
- 409xxx: 重复或状态冲突
- 502xxx / 503xxx: 支付处理方或存储不可用
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """
    应用自定义异常类

    用于业务逻辑中的错误处理，包含：
    - code: 业务错误码（用于调用方区分不同错误）
    - message: 错误消息
    - status_code: HTTP 状态码（400, 404, 500 等）

    使用示例：
        raise AppError(code=404101, message="Payout not found", status_code=404)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


# ==================== 校验错误 ====================


class PayoutValidationError(AppError):
    """请求不满足金额或提现规则"""


class InvalidAmountError(PayoutValidationError):
    def __init__(self, message: str = "Amount must be positive") -> None:
        super().__init__(code=400101, message=message, status_code=400)


class BelowMinimumError(PayoutValidationError):
    def __init__(self, minimum: Any) -> None:
        super().__init__(
            code=400102,
            message=f"Payout amount is below the minimum of {minimum}",
            status_code=400,
        )
        self.minimum = minimum


class TooManyPendingError(PayoutValidationError):
    def __init__(self, limit: int) -> None:
        super().__init__(
            code=400103,
            message=f"Too many pending payouts (limit {limit})",
            status_code=400,
        )
        self.limit = limit


class CurrencyMismatchError(PayoutValidationError):
    def __init__(self, *, expected: str, got: str) -> None:
        super().__init__(
            code=400104,
            message=f"Currency mismatch: ledger is {expected}, got {got}",
            status_code=400,
        )


# ==================== 资格错误 ====================


class EligibilityError(AppError):
    """创作者当前不能提现"""


class VerificationRequiredError(EligibilityError):
    def __init__(self, message: str = "Payout account is not verified") -> None:
        super().__init__(code=403101, message=message, status_code=403)


class InsufficientBalanceError(EligibilityError):
    """
    可用余额不足

    402 在语义上更准确，但很多客户端会特殊处理 402，所以使用 400。
    """

    def __init__(self, *, available: Any = None, requested: Any = None) -> None:
        super().__init__(code=402101, message="Insufficient available balance", status_code=400)
        self.available = available
        self.requested = requested


# ==================== 冲突 ====================


class DuplicateEventError(AppError):
    """收入事件重复（external_reference_id 已记账），携带已存在的事件"""

    def __init__(self, existing: Any) -> None:
        super().__init__(code=409101, message="Revenue event already recorded", status_code=409)
        self.existing = existing


class InvalidTransitionError(AppError):
    def __init__(self, *, current: str, target: str) -> None:
        super().__init__(
            code=409102,
            message=f"Invalid state transition: {current} -> {target}",
            status_code=409,
        )
        self.current = current
        self.target = target


# ==================== 支付处理方 ====================


class ProcessorUnavailableError(AppError):
    """重试耗尽，支付处理方仍不可用（预留余额已释放）"""

    def __init__(self, message: str = "Payout processor is unavailable, please retry later") -> None:
        super().__init__(code=503101, message=message, status_code=503)


class PayoutRejectedError(AppError):
    """支付处理方明确拒绝了提现（预留余额已释放）"""

    def __init__(self, message: str = "Payout was rejected by the processor") -> None:
        super().__init__(code=502101, message=message, status_code=502)


def payout_not_found() -> AppError:
    return AppError(code=404101, message="Payout not found", status_code=404)


def account_not_found() -> AppError:
    return AppError(code=404102, message="Creator account not found", status_code=404)
