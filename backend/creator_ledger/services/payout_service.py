"""
提现请求处理服务

提现是唯一创建 PayoutRequest 的写入路径，流程：
1. 校验金额、认证资格、进行中提现数量
2. 预留余额并创建 requested 提现单（同一事务）
3. 提交前再次检查资格（认证可能在这期间被撤销）
4. 提交给支付处理方（可重试错误按指数退避重试）
5. 成功 -> submitted；失败 -> 释放预留并标记 failed，再抛出错误

提交给处理方时不持有数据库事务。之后的状态变化（到账/失败）由对账服务处理。
"""
import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from creator_ledger import crud
from creator_ledger.api.errors import (
    BelowMinimumError,
    CurrencyMismatchError,
    InvalidAmountError,
    PayoutRejectedError,
    ProcessorUnavailableError,
    TooManyPendingError,
    VerificationRequiredError,
)
from creator_ledger.core.config import settings
from creator_ledger.crud.ledger import to_money
from creator_ledger.enums import HistorySource, PayoutStatus
from creator_ledger.integrations.processor import (
    PayoutProcessorClient,
    ProcessorError,
    SubmitResult,
    get_processor_client,
)
from creator_ledger.models import PayoutRequest

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProcessorError) and exc.retryable


def submit_with_retry(
    processor: PayoutProcessorClient,
    *,
    external_account_id: str,
    amount: Decimal,
    currency: str,
    idempotency_key: str,
) -> SubmitResult:
    """
    提交提现，可重试错误按指数退避重试

    幂等键保证重试不会在处理方产生重复打款。
    重试耗尽或不可重试时抛出最后一次的 ProcessorError。
    """
    retryer = Retrying(
        stop=stop_after_attempt(max(1, settings.PROCESSOR_SUBMIT_MAX_ATTEMPTS)),
        wait=wait_exponential(
            multiplier=settings.PROCESSOR_BACKOFF_INITIAL_SECONDS,
            max=settings.PROCESSOR_BACKOFF_MAX_SECONDS,
        ),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retryer(
        processor.submit_payout,
        external_account_id=external_account_id,
        amount=amount,
        currency=currency,
        idempotency_key=idempotency_key,
    )


def _fail_and_release(
    *,
    session: Session,
    payout_id: int,
    creator_id: str,
    reservation_id: int,
    reason: str,
) -> None:
    """提现单标记 failed 并释放预留余额（同一事务）"""
    crud.transition_status(
        session=session,
        payout_id=payout_id,
        current=PayoutStatus.requested,
        target=PayoutStatus.failed,
        source=HistorySource.handler,
        failure_reason=reason,
        note=reason,
        commit=False,
    )
    crud.release(
        session=session, creator_id=creator_id, reservation_id=reservation_id, commit=False
    )
    session.commit()
    logger.warning(f"Payout {payout_id} failed before submission, balance released: {reason}")


def request_payout(
    *,
    session: Session,
    creator_id: str,
    amount: Decimal | int | str,
    currency: str | None = None,
    notes: str | None = None,
    processor: PayoutProcessorClient | None = None,
) -> PayoutRequest:
    """
    发起提现

    Args:
        creator_id: 创作者 ID
        amount: 提现金额
        currency: 币种（不传则使用账本币种）
        notes: 备注
        processor: 支付处理方客户端（测试时注入）

    Returns:
        submitted 状态的提现单

    Raises:
        InvalidAmountError / BelowMinimumError: 金额不合法或低于最低提现金额
        VerificationRequiredError: 账户未认证、已停用或缺少收款账户
        CurrencyMismatchError: 币种与账本不一致
        TooManyPendingError: 进行中的提现已达上限
        InsufficientBalanceError: 可用余额不足
        ProcessorUnavailableError: 重试耗尽仍无法提交（余额已释放）
        PayoutRejectedError: 处理方拒绝（余额已释放）
    """
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError()
    if amount < settings.MINIMUM_PAYOUT_AMOUNT:
        raise BelowMinimumError(settings.MINIMUM_PAYOUT_AMOUNT)

    account = crud.get_account(session=session, creator_id=creator_id)
    reasons = crud.ineligibility_reasons(account)
    if reasons:
        raise VerificationRequiredError(f"Payout not allowed: {', '.join(reasons)}")

    ledger = crud.get_ledger(session=session, creator_id=creator_id)
    payout_currency = ledger.currency if ledger else settings.DEFAULT_CURRENCY
    if currency and currency.upper() != payout_currency:
        raise CurrencyMismatchError(expected=payout_currency, got=currency.upper())

    limit = settings.MAX_CONCURRENT_PENDING_PAYOUTS
    if crud.count_open_payouts(session=session, creator_id=creator_id) >= limit:
        raise TooManyPendingError(limit)

    # 预留和提现单在同一事务中写入；预留内部再做一次数量上限的原子校验
    reservation = crud.reserve(
        session=session, creator_id=creator_id, amount=amount, max_open=limit, commit=False
    )
    payout = crud.create_payout(
        session=session,
        creator_id=creator_id,
        amount=amount,
        currency=payout_currency,
        reservation_id=reservation.id,
        external_account_id=account.external_account_id,
        notes=notes,
        commit=False,
    )
    payout_id = payout.id
    reservation_id = reservation.id
    session.commit()
    logger.info(f"Payout {payout_id} requested: creator={creator_id} amount={amount} {payout_currency}")

    # 提交前二次检查：认证可能在预留期间被撤销
    account = crud.get_account(session=session, creator_id=creator_id)
    reasons = crud.ineligibility_reasons(account)
    if reasons:
        _fail_and_release(
            session=session,
            payout_id=payout_id,
            creator_id=creator_id,
            reservation_id=reservation_id,
            reason=f"ineligible before submission: {', '.join(reasons)}",
        )
        raise VerificationRequiredError(f"Payout not allowed: {', '.join(reasons)}")
    external_account_id = account.external_account_id
    # 结束读事务，调用处理方期间不持有数据库事务
    session.commit()

    processor = processor or get_processor_client()
    try:
        result = submit_with_retry(
            processor,
            external_account_id=external_account_id,
            amount=amount,
            currency=payout_currency,
            idempotency_key=str(payout_id),
        )
    except ProcessorError as e:
        _fail_and_release(
            session=session,
            payout_id=payout_id,
            creator_id=creator_id,
            reservation_id=reservation_id,
            reason=e.message,
        )
        if e.retryable:
            raise ProcessorUnavailableError()
        raise PayoutRejectedError()

    try:
        applied = crud.transition_status(
            session=session,
            payout_id=payout_id,
            current=PayoutStatus.requested,
            target=PayoutStatus.submitted,
            source=HistorySource.handler,
            external_payout_id=result.external_payout_id,
        )
    except SQLAlchemyError:
        # 处理方已受理但本地仍是 requested，预留保持占用，由滞留巡检上报
        session.rollback()
        logger.error(
            f"Payout {payout_id} accepted by processor as {result.external_payout_id} "
            "but could not be marked submitted"
        )
        raise
    if not applied:
        logger.error(f"Payout {payout_id} left requested state unexpectedly during submission")
    else:
        logger.info(f"Payout {payout_id} submitted: external_id={result.external_payout_id}")
    return crud.get_payout(session=session, payout_id=payout_id)
