"""
Snowflake ID 生成器

所有表的主键（收入事件、预留、提现单、Webhook 记录等）都使用 64 位 Snowflake ID：
时间戳 41 位 | 节点 ID 10 位 | 序列号 12 位。
ID 按时间递增，可直接用于排序。
"""
from __future__ import annotations

import threading
import time

from creator_ledger.core.config import settings

# 2024-01-01T00:00:00Z
_EPOCH_MS = 1704067200000
_MAX_NODE_ID = 0x3FF
_SEQ_MASK = 0xFFF
# 允许等待追平的最大时钟回拨
_MAX_BACKWARD_MS = 5000


class Snowflake:
    """线程安全的 Snowflake 生成器，每个进程一个实例"""

    def __init__(self, *, node_id: int) -> None:
        if not (0 <= node_id <= _MAX_NODE_ID):
            raise ValueError("SNOWFLAKE_NODE_ID must be in [0, 1023]")
        self._node_id = node_id
        self._lock = threading.Lock()
        self._last_ts = -1
        self._seq = 0

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @classmethod
    def _wait_until(cls, target_ms: int) -> int:
        ts = cls._now_ms()
        while ts < target_ms:
            time.sleep(0.001)
            ts = cls._now_ms()
        return ts

    def next_id(self) -> int:
        """
        生成下一个 ID

        Raises:
            RuntimeError: 时钟回拨超过 5 秒时拒绝生成，避免 ID 重复
        """
        with self._lock:
            ts = self._now_ms()
            if ts < self._last_ts:
                drift = self._last_ts - ts
                if drift > _MAX_BACKWARD_MS:
                    raise RuntimeError(
                        f"Clock moved backwards by {drift}ms. "
                        "Refusing to generate IDs to prevent duplicates."
                    )
                ts = self._wait_until(self._last_ts)

            if ts == self._last_ts:
                self._seq = (self._seq + 1) & _SEQ_MASK
                if self._seq == 0:
                    # 当前毫秒序列号用尽
                    ts = self._wait_until(self._last_ts + 1)
            else:
                self._seq = 0

            self._last_ts = ts
            return ((ts - _EPOCH_MS) << 22) | (self._node_id << 12) | self._seq


_GENERATOR: Snowflake | None = None
_GENERATOR_LOCK = threading.Lock()


def generate_id() -> int:
    """生成唯一 ID，供模型的 default_factory 使用"""
    global _GENERATOR
    if _GENERATOR is None:
        with _GENERATOR_LOCK:
            if _GENERATOR is None:
                _GENERATOR = Snowflake(node_id=settings.SNOWFLAKE_NODE_ID)
    return _GENERATOR.next_id()
