"""
余额与提现资格查询服务

只读，不修改任何数据。账本不存在时视为零余额。
"""
from decimal import Decimal

from sqlmodel import Session, func, select

from creator_ledger import crud
from creator_ledger.api.errors import payout_not_found
from creator_ledger.api.schemas import (
    BalanceView,
    EligibilityView,
    PayoutDetail,
    PayoutHistoryPublic,
    RevenueEventPublic,
)
from creator_ledger.core.config import settings
from creator_ledger.enums import PayoutStatus, VerificationState
from creator_ledger.models import PayoutRequest, RevenueEvent

_ZERO = Decimal("0.00")


def get_balance(*, session: Session, creator_id: str) -> BalanceView:
    ledger = crud.get_ledger(session=session, creator_id=creator_id)
    if ledger is None:
        return BalanceView(
            available=_ZERO,
            reserved=_ZERO,
            total_earned=_ZERO,
            total_paid_out=_ZERO,
            currency=settings.DEFAULT_CURRENCY,
        )
    return BalanceView(
        available=ledger.available,
        reserved=ledger.reserved,
        total_earned=ledger.total_earned,
        total_paid_out=ledger.total_paid_out,
        currency=ledger.currency,
    )


def get_eligibility(*, session: Session, creator_id: str) -> EligibilityView:
    """
    查询提现资格

    除了账户认证状态外，也把余额低于最低提现金额、进行中的提现已满列为原因，
    便于前端直接展示。
    """
    account = crud.get_account(session=session, creator_id=creator_id)
    balance = get_balance(session=session, creator_id=creator_id)
    pending = crud.count_open_payouts(session=session, creator_id=creator_id)

    reasons = crud.ineligibility_reasons(account)
    if balance.available < settings.MINIMUM_PAYOUT_AMOUNT:
        reasons.append("below_minimum_balance")
    if pending >= settings.MAX_CONCURRENT_PENDING_PAYOUTS:
        reasons.append("too_many_pending")

    return EligibilityView(
        eligible=not reasons,
        reason=reasons[0] if reasons else None,
        reasons=reasons,
        verification_state=account.verification_state if account else VerificationState.unset,
        available_balance=balance.available,
        minimum_amount=settings.MINIMUM_PAYOUT_AMOUNT,
        pending_payouts_count=pending,
        max_pending_payouts=settings.MAX_CONCURRENT_PENDING_PAYOUTS,
        currency=balance.currency,
    )


def list_payouts(
    *,
    session: Session,
    creator_id: str,
    status: PayoutStatus | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[PayoutRequest], int]:
    offset = (page - 1) * page_size
    return crud.list_payouts(
        session=session, creator_id=creator_id, status=status, offset=offset, limit=page_size
    )


def list_revenue_events(
    *, session: Session, creator_id: str, page: int = 1, page_size: int = 20
) -> tuple[list[RevenueEventPublic], int]:
    """收入流水（分页，按发生时间倒序）"""
    offset = (page - 1) * page_size

    count_stmt = (
        select(func.count())
        .select_from(RevenueEvent)
        .where(RevenueEvent.creator_id == creator_id)
    )
    count = session.exec(count_stmt).one()

    stmt = (
        select(RevenueEvent)
        .where(RevenueEvent.creator_id == creator_id)
        .order_by(RevenueEvent.occurred_at.desc(), RevenueEvent.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    rows = session.exec(stmt).all()
    return [RevenueEventPublic.model_validate(row) for row in rows], count


def get_payout(*, session: Session, creator_id: str, payout_id: int) -> PayoutDetail:
    """
    提现详情（含状态历史）

    Raises:
        AppError: 提现单不存在或不属于该创作者（404101）
    """
    payout = crud.get_payout(session=session, payout_id=payout_id, creator_id=creator_id)
    if payout is None:
        raise payout_not_found()
    history = crud.list_history(session=session, payout_id=payout.id)
    detail = PayoutDetail.model_validate(payout)
    detail.history = [PayoutHistoryPublic.model_validate(h) for h in history]
    return detail
