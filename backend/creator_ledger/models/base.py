"""
基础模型模块

- utc_now: 所有时间字段的默认值
- MinorUnits: 金额列类型

金额在数据库中按最小货币单位（分）存为 BIGINT，Python 侧仍是两位小数的 Decimal。
SQLite 的 NUMERIC 列按浮点比较（0.30 - 0.10 < 0.20），余额条件更新必须用整数才精确。
"""
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel

_CENTS_PER_UNIT = 100
_CENT = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MinorUnits(TypeDecorator):
    """
    Decimal 金额 <-> 整数分

    写入时拒绝超过两位小数的金额（不做四舍五入）；
    在 SQL 表达式中与该列比较、相加的字面量也会按分绑定。
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        cents = Decimal(value) * _CENTS_PER_UNIT
        if cents != cents.to_integral_value():
            raise ValueError(f"Amount {value!r} has more than two decimal places")
        return int(cents)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(int(value)) / _CENTS_PER_UNIT).quantize(_CENT)

    def coerce_compared_value(self, op, value):
        return self


__all__ = ["SQLModel", "utc_now", "MinorUnits"]
