"""
支付处理方（外部打款服务）API 集成模块

封装提现提交接口，以及处理方状态到本地提现状态的映射。
处理方的状态词汇沿用 Wise transfer 的状态名。

支持模拟模式（PROCESSOR_MOCK），本地开发时不发起真实网络请求。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from creator_ledger.core.config import settings
from creator_ledger.enums import PayoutStatus

_PAYOUTS_PATH = "/v1/payouts"

# 处理方状态 -> 本地提现状态
_STATUS_MAP: dict[str, PayoutStatus] = {
    "submitted": PayoutStatus.submitted,
    "incoming_payment_waiting": PayoutStatus.in_transit,
    "processing": PayoutStatus.in_transit,
    "funds_converted": PayoutStatus.in_transit,
    "in_transit": PayoutStatus.in_transit,
    "outgoing_payment_sent": PayoutStatus.paid,
    "paid": PayoutStatus.paid,
    "bounced_back": PayoutStatus.failed,
    "funds_refunded": PayoutStatus.failed,
    "charged_back": PayoutStatus.failed,
    "cancelled": PayoutStatus.failed,
    "failed": PayoutStatus.failed,
}


def map_external_status(external_status: str | None) -> PayoutStatus | None:
    """把处理方状态映射为本地状态，无法识别时返回 None"""
    if not external_status:
        return None
    return _STATUS_MAP.get(external_status.strip().lower())


class ProcessorError(Exception):
    """
    支付处理方调用失败

    retryable 为 True 表示可以重试（网络错误、超时、429、5xx），
    False 表示处理方明确拒绝（4xx），重试没有意义。
    """

    def __init__(self, message: str, *, retryable: bool, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


@dataclass(frozen=True)
class SubmitResult:
    """提交结果"""
    external_payout_id: str
    raw: dict[str, Any] | None = None


class PayoutProcessorClient:
    """
    支付处理方客户端

    API：
    - POST /v1/payouts，请求头 Idempotency-Key，返回 {"id": "<处理方打款 ID>"}
      相同幂等键的重复提交由处理方返回同一笔打款，因此提交可以安全重试。
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        mock: bool | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._mock = settings.PROCESSOR_MOCK if mock is None else mock
        self._base_url = (base_url or settings.PROCESSOR_BASE_URL).rstrip("/")
        self._api_token = api_token or settings.PROCESSOR_API_TOKEN
        self._timeout = timeout or settings.PROCESSOR_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": idempotency_key,
        }
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def submit_payout(
        self,
        *,
        external_account_id: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> SubmitResult:
        """
        提交提现

        Args:
            external_account_id: 处理方侧收款账户 ID
            amount: 金额
            currency: 币种
            idempotency_key: 幂等键（提现单 ID）

        Raises:
            ProcessorError: 调用失败，retryable 标识是否可以重试
        """
        if self._mock:
            return SubmitResult(
                external_payout_id=f"mock_po_{idempotency_key}", raw={"mock": True}
            )

        url = f"{self._base_url}{_PAYOUTS_PATH}"
        payload = {
            "external_account_id": external_account_id,
            "amount": str(amount),
            "currency": currency,
            "idempotency_key": idempotency_key,
        }

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                r = client.post(url, json=payload, headers=self._headers(idempotency_key))
        except httpx.TransportError as e:
            # 连接失败、超时等，请求可能未到达处理方，可以用同一幂等键重试
            raise ProcessorError(f"Processor network error: {e}", retryable=True)

        if r.status_code == 429 or r.status_code >= 500:
            raise ProcessorError(
                f"Processor temporarily unavailable: HTTP {r.status_code}",
                retryable=True,
                status_code=r.status_code,
            )
        if r.status_code >= 400:
            raise ProcessorError(
                f"Processor rejected payout: HTTP {r.status_code} {r.text[:200]}",
                retryable=False,
                status_code=r.status_code,
            )

        try:
            data = r.json()
        except ValueError:
            raise ProcessorError("Processor returned invalid JSON", retryable=True)
        external_id = data.get("id") if isinstance(data, dict) else None
        if not external_id:
            raise ProcessorError("Processor response missing payout id", retryable=True)
        return SubmitResult(external_payout_id=str(external_id), raw=data)


def get_processor_client() -> PayoutProcessorClient:
    """获取支付处理方客户端（按当前配置创建）"""
    return PayoutProcessorClient()
