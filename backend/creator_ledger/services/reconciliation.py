"""
对账服务（处理支付处理方的状态回调）

处理方的 webhook 至少投递一次，可能重复、可能乱序：
- 按 external_event_id 去重，已处理的事件直接忽略
- 事件先落库（processed=False）再处理；找不到提现单时保持未处理，等待重投
- 状态只按状态表前进，乱序到达的旧状态记为 stale，只记录日志
- 到账时结算预留，失败时释放预留，与状态变更在同一事务中
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from creator_ledger import crud
from creator_ledger.enums import HistorySource, PayoutStatus, ReconciliationOutcome
from creator_ledger.integrations.processor import map_external_status
from creator_ledger.models import PayoutRequest, WebhookEventRecord, utc_now
from creator_ledger.state_machine import can_transition

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    payout: PayoutRequest | None = None


def get_event_record(*, session: Session, external_event_id: str) -> WebhookEventRecord | None:
    stmt = (
        select(WebhookEventRecord)
        .where(WebhookEventRecord.external_event_id == external_event_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).first()


def _store_event(
    *,
    session: Session,
    external_event_id: str,
    external_payout_id: str,
    external_status: str,
    payload: dict[str, Any] | None,
) -> WebhookEventRecord:
    """事件落库（已存在则返回已有记录）"""
    record = get_event_record(session=session, external_event_id=external_event_id)
    if record is not None:
        return record
    record = WebhookEventRecord(
        external_event_id=external_event_id,
        external_payout_id=external_payout_id,
        external_status=external_status,
        payload=payload,
    )
    session.add(record)
    try:
        session.commit()
    except IntegrityError:
        # 同一事件的并发投递
        session.rollback()
        record = get_event_record(session=session, external_event_id=external_event_id)
        if record is None:
            raise
        return record
    session.refresh(record)
    return record


def _mark_processed(
    *, session: Session, record_id: int, outcome: ReconciliationOutcome, commit: bool = True
) -> None:
    stmt = (
        update(WebhookEventRecord)
        .where(WebhookEventRecord.id == record_id, WebhookEventRecord.processed.is_(False))
        .values(processed=True, processed_at=utc_now(), outcome=outcome.value)
        .execution_options(synchronize_session=False)
    )
    session.exec(stmt)
    if commit:
        session.commit()


def _check_amount(
    *,
    payout: PayoutRequest,
    external_event_id: str,
    amount: Decimal | None,
    currency: str | None,
) -> None:
    """事件中的金额/币种与提现单不一致时记 WARNING（不阻止状态更新）"""
    drift = []
    if amount is not None and Decimal(amount) != payout.amount:
        drift.append(f"amount {amount} != {payout.amount}")
    if currency and currency.upper() != payout.currency:
        drift.append(f"currency {currency.upper()} != {payout.currency}")
    if drift:
        logger.warning(
            f"Processor event {external_event_id} disagrees with payout {payout.id}: "
            + ", ".join(drift)
        )


def handle_external_event(
    *,
    session: Session,
    external_event_id: str,
    external_payout_id: str,
    external_status: str,
    payload: dict[str, Any] | None = None,
    amount: Decimal | None = None,
    currency: str | None = None,
) -> ReconciliationResult:
    """
    处理一条支付处理方状态事件

    Returns:
        ReconciliationResult，outcome 为 applied / duplicate / stale / ignored / unknown_payout。
        除 unknown_payout 外事件都会被标记为已处理。
    """
    record = _store_event(
        session=session,
        external_event_id=external_event_id,
        external_payout_id=external_payout_id,
        external_status=external_status,
        payload=payload,
    )
    if record.processed:
        logger.info(f"Duplicate processor event ignored: {external_event_id}")
        payout = crud.get_payout_by_external_id(
            session=session, external_payout_id=external_payout_id
        )
        return ReconciliationResult(outcome=ReconciliationOutcome.duplicate, payout=payout)
    record_id = record.id

    payout = crud.get_payout_by_external_id(session=session, external_payout_id=external_payout_id)
    if payout is None:
        logger.warning(
            f"Processor event {external_event_id} references unknown payout "
            f"{external_payout_id}, waiting for redelivery"
        )
        return ReconciliationResult(outcome=ReconciliationOutcome.unknown_payout)

    _check_amount(
        payout=payout, external_event_id=external_event_id, amount=amount, currency=currency
    )

    target = map_external_status(external_status)
    if target is None:
        logger.warning(
            f"Processor event {external_event_id} has unrecognised status {external_status!r}"
        )
        _mark_processed(session=session, record_id=record_id, outcome=ReconciliationOutcome.ignored)
        return ReconciliationResult(outcome=ReconciliationOutcome.ignored, payout=payout)

    current = PayoutStatus(payout.status)
    if not can_transition(current, target):
        logger.info(
            f"Stale processor event {external_event_id} for payout {payout.id}: "
            f"{current.value} -> {target.value} not allowed"
        )
        _mark_processed(session=session, record_id=record_id, outcome=ReconciliationOutcome.stale)
        return ReconciliationResult(outcome=ReconciliationOutcome.stale, payout=payout)

    payout_id = payout.id
    creator_id = payout.creator_id
    reservation_id = payout.reservation_id
    applied = crud.transition_status(
        session=session,
        payout_id=payout_id,
        current=current,
        target=target,
        source=HistorySource.webhook,
        external_event_id=external_event_id,
        note=external_status,
        failure_reason=external_status if target == PayoutStatus.failed else None,
        commit=False,
    )
    if not applied:
        # 并发的另一条事件已经改了状态
        session.rollback()
        logger.info(f"Processor event {external_event_id} lost the race for payout {payout_id}")
        _mark_processed(session=session, record_id=record_id, outcome=ReconciliationOutcome.stale)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.stale,
            payout=crud.get_payout(session=session, payout_id=payout_id),
        )

    if target == PayoutStatus.paid:
        crud.finalize(
            session=session, creator_id=creator_id, reservation_id=reservation_id, commit=False
        )
    elif target == PayoutStatus.failed:
        crud.release(
            session=session, creator_id=creator_id, reservation_id=reservation_id, commit=False
        )
    _mark_processed(
        session=session, record_id=record_id, outcome=ReconciliationOutcome.applied, commit=False
    )
    session.commit()

    if target == PayoutStatus.failed:
        logger.warning(
            f"Payout {payout_id} failed at processor ({external_status}), balance released"
        )
    return ReconciliationResult(
        outcome=ReconciliationOutcome.applied,
        payout=crud.get_payout(session=session, payout_id=payout_id),
    )
