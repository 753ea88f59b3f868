"""
提现单 CRUD 操作

提现状态只能通过 transition_status 修改：对 status 做条件更新，
同时写一条状态历史，保证同一迁移最多生效一次。
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import and_, or_, update
from sqlmodel import Session, func, select

from creator_ledger.core.config import settings
from creator_ledger.enums import HistorySource, PayoutStatus
from creator_ledger.models import PayoutRequest, PayoutStatusHistory, utc_now
from creator_ledger.state_machine import ensure_payout_transition

logger = logging.getLogger(__name__)

OPEN_STATUSES = (PayoutStatus.requested, PayoutStatus.submitted, PayoutStatus.in_transit)
STALE_STATUSES = (PayoutStatus.submitted, PayoutStatus.in_transit)


def _values(statuses: tuple[PayoutStatus, ...]) -> list[str]:
    return [s.value for s in statuses]


def create_payout(
    *,
    session: Session,
    creator_id: str,
    amount: Decimal,
    currency: str,
    reservation_id: int,
    external_account_id: str | None,
    notes: str | None = None,
    commit: bool = True,
) -> PayoutRequest:
    """创建 requested 状态的提现单，并记录第一条状态历史"""
    payout = PayoutRequest(
        creator_id=creator_id,
        amount=amount,
        currency=currency,
        status=PayoutStatus.requested,
        reservation_id=reservation_id,
        external_account_id=external_account_id,
        notes=notes,
    )
    session.add(payout)
    session.flush()
    session.add(
        PayoutStatusHistory(
            payout_id=payout.id,
            from_status=None,
            to_status=PayoutStatus.requested,
            source=HistorySource.handler,
        )
    )
    if commit:
        session.commit()
        session.refresh(payout)
    else:
        session.flush()
    return payout


def transition_status(
    *,
    session: Session,
    payout_id: int,
    current: PayoutStatus | str,
    target: PayoutStatus | str,
    source: HistorySource,
    external_event_id: str | None = None,
    note: str | None = None,
    external_payout_id: str | None = None,
    failure_reason: str | None = None,
    commit: bool = True,
) -> bool:
    """
    状态迁移（比较并设置）

    只有数据库中的状态仍为 current 时才生效。

    Returns:
        是否生效；False 表示状态已被其他请求修改

    Raises:
        InvalidTransitionError: current -> target 不在状态表中
    """
    current = PayoutStatus(current)
    target = PayoutStatus(target)
    ensure_payout_transition(current, target)
    now = utc_now()

    values: dict = {"status": target.value, "updated_at": now}
    if target == PayoutStatus.submitted:
        values["submitted_at"] = now
    if target.is_terminal:
        values["resolved_at"] = now
    if external_payout_id:
        values["external_payout_id"] = external_payout_id
    if failure_reason:
        values["failure_reason"] = failure_reason[:255]

    stmt = (
        update(PayoutRequest)
        .where(PayoutRequest.id == payout_id, PayoutRequest.status == current.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if session.exec(stmt).rowcount != 1:
        if commit:
            session.rollback()
        return False

    session.add(
        PayoutStatusHistory(
            payout_id=payout_id,
            from_status=current,
            to_status=target,
            source=source,
            external_event_id=external_event_id,
            note=note,
        )
    )
    if commit:
        session.commit()
    else:
        session.flush()
    logger.info(
        f"Payout {payout_id} status {current.value} -> {target.value} (source={source.value})"
    )
    return True


def get_payout(
    *, session: Session, payout_id: int, creator_id: str | None = None
) -> PayoutRequest | None:
    """按 ID 获取提现单；指定 creator_id 时只返回该创作者的提现单"""
    stmt = (
        select(PayoutRequest)
        .where(PayoutRequest.id == payout_id)
        .execution_options(populate_existing=True)
    )
    if creator_id is not None:
        stmt = stmt.where(PayoutRequest.creator_id == creator_id)
    return session.exec(stmt).first()


def get_payout_by_external_id(*, session: Session, external_payout_id: str) -> PayoutRequest | None:
    stmt = (
        select(PayoutRequest)
        .where(PayoutRequest.external_payout_id == external_payout_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).first()


def count_open_payouts(*, session: Session, creator_id: str) -> int:
    """未终结（requested/submitted/in_transit）的提现数量"""
    stmt = (
        select(func.count())
        .select_from(PayoutRequest)
        .where(
            PayoutRequest.creator_id == creator_id,
            PayoutRequest.status.in_(_values(OPEN_STATUSES)),
        )
    )
    return session.exec(stmt).one()


def list_payouts(
    *,
    session: Session,
    creator_id: str,
    status: PayoutStatus | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[PayoutRequest], int]:
    """分页查询提现单，按创建时间倒序"""
    conditions = [PayoutRequest.creator_id == creator_id]
    if status is not None:
        conditions.append(PayoutRequest.status == PayoutStatus(status).value)

    count = session.exec(
        select(func.count()).select_from(PayoutRequest).where(*conditions)
    ).one()
    rows = session.exec(
        select(PayoutRequest)
        .where(*conditions)
        .order_by(PayoutRequest.requested_at.desc(), PayoutRequest.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return list(rows), count


def list_history(*, session: Session, payout_id: int) -> list[PayoutStatusHistory]:
    stmt = (
        select(PayoutStatusHistory)
        .where(PayoutStatusHistory.payout_id == payout_id)
        .order_by(PayoutStatusHistory.created_at, PayoutStatusHistory.id)
    )
    return list(session.exec(stmt).all())


def find_stale_payouts(
    *,
    session: Session,
    older_than: timedelta | None = None,
    requested_older_than: timedelta | None = None,
    now: datetime | None = None,
    limit: int = 500,
) -> list[PayoutRequest]:
    """
    查找滞留的提现单

    - submitted/in_transit 超过 older_than 没有任何状态更新：通常是支付处理方的回调丢失
    - requested 超过 requested_older_than：处理方可能已受理，但本地没写入 submitted
      （提交后进程崩溃或数据库写入失败），预留一直被占用，也没有 external_payout_id

    两种都需要人工与支付处理方核对。

    Args:
        older_than: 已提交提现的滞留阈值，默认 STALE_PAYOUT_AFTER_HOURS
        requested_older_than: requested 提现的滞留阈值，默认 STALE_REQUESTED_AFTER_MINUTES
        now: 当前时间（测试用）
    """
    if older_than is None:
        older_than = timedelta(hours=settings.STALE_PAYOUT_AFTER_HOURS)
    if requested_older_than is None:
        requested_older_than = timedelta(minutes=settings.STALE_REQUESTED_AFTER_MINUTES)
    now = now or utc_now()
    stmt = (
        select(PayoutRequest)
        .where(
            or_(
                and_(
                    PayoutRequest.status.in_(_values(STALE_STATUSES)),
                    PayoutRequest.updated_at < now - older_than,
                ),
                and_(
                    PayoutRequest.status == PayoutStatus.requested.value,
                    PayoutRequest.updated_at < now - requested_older_than,
                ),
            )
        )
        .order_by(PayoutRequest.updated_at)
        .limit(limit)
    )
    return list(session.exec(stmt).all())
