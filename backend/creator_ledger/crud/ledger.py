"""
账本 CRUD 操作

账本余额只能通过本模块的四个操作修改：记收入、预留、释放、结算。
每个操作都是一条带条件的 UPDATE（比较并设置），通过 rowcount 判断是否生效，
不做先读后写，因此同一创作者的并发请求不会超额预留。
"""
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import literal, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from creator_ledger.api.errors import (
    AppError,
    CurrencyMismatchError,
    DuplicateEventError,
    InsufficientBalanceError,
    InvalidAmountError,
    TooManyPendingError,
)
from creator_ledger.core.config import settings
from creator_ledger.enums import ReservationState, RevenueSourceType
from creator_ledger.models import (
    CreatorLedger,
    LedgerReservation,
    MinorUnits,
    RevenueEvent,
    utc_now,
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    转成两位小数的 Decimal

    不接受 float（避免精度问题），也不四舍五入：超过两位小数直接拒绝。
    """
    if isinstance(value, float):
        raise InvalidAmountError("Amount must be a decimal string, not a float")
    try:
        amount = Decimal(value)
    except ArithmeticError:
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount != amount.quantize(_CENT):
        raise InvalidAmountError("Amount must have at most two decimal places")
    return amount.quantize(_CENT)


def _money(amount: Decimal):
    """金额字面量（按分绑定，和金额列做整数运算）"""
    return literal(amount, MinorUnits())


def _available_expr():
    return CreatorLedger.total_earned - CreatorLedger.total_paid_out - CreatorLedger.reserved


def get_ledger(*, session: Session, creator_id: str) -> CreatorLedger | None:
    """读取账本（总是从数据库刷新，不使用会话中缓存的旧值）"""
    stmt = (
        select(CreatorLedger)
        .where(CreatorLedger.creator_id == creator_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).first()


def get_or_create_ledger(
    *, session: Session, creator_id: str, currency: str | None = None
) -> CreatorLedger:
    """获取账本，不存在则创建一条零余额账本"""
    ledger = get_ledger(session=session, creator_id=creator_id)
    if ledger:
        return ledger

    ledger = CreatorLedger(
        creator_id=creator_id,
        currency=(currency or settings.DEFAULT_CURRENCY).upper(),
    )
    session.add(ledger)
    try:
        session.commit()
    except IntegrityError:
        # 并发创建，另一个请求已经插入
        session.rollback()
        ledger = get_ledger(session=session, creator_id=creator_id)
        if ledger is None:
            raise
        return ledger
    session.refresh(ledger)
    return ledger


def get_event_by_reference(
    *, session: Session, creator_id: str, external_reference_id: str
) -> RevenueEvent | None:
    stmt = select(RevenueEvent).where(
        RevenueEvent.creator_id == creator_id,
        RevenueEvent.external_reference_id == external_reference_id,
    )
    return session.exec(stmt).first()


def record_event(
    *,
    session: Session,
    creator_id: str,
    amount: Decimal | int | str,
    currency: str,
    source_type: RevenueSourceType,
    external_reference_id: str,
    occurred_at: datetime | None = None,
) -> RevenueEvent:
    """
    记录一笔收入

    收入事件和累计收入在同一事务中写入。只增加 total_earned，不受进行中的提现影响。

    Raises:
        InvalidAmountError: 金额不为正
        CurrencyMismatchError: 币种与账本币种不一致
        DuplicateEventError: 同一 external_reference_id 已记账（携带已存在的事件）
    """
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError()
    currency = currency.upper()

    existing = get_event_by_reference(
        session=session, creator_id=creator_id, external_reference_id=external_reference_id
    )
    if existing:
        raise DuplicateEventError(existing)

    ledger = get_or_create_ledger(session=session, creator_id=creator_id, currency=currency)
    if ledger.currency != currency:
        raise CurrencyMismatchError(expected=ledger.currency, got=currency)

    event = RevenueEvent(
        creator_id=creator_id,
        source_type=source_type,
        amount=amount,
        currency=currency,
        external_reference_id=external_reference_id,
        occurred_at=occurred_at or utc_now(),
    )
    session.add(event)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        existing = get_event_by_reference(
            session=session, creator_id=creator_id, external_reference_id=external_reference_id
        )
        if existing is None:
            raise
        raise DuplicateEventError(existing)

    stmt = (
        update(CreatorLedger)
        .where(CreatorLedger.creator_id == creator_id)
        .values(total_earned=CreatorLedger.total_earned + _money(amount), updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    session.exec(stmt)
    session.commit()
    session.refresh(event)

    logger.info(
        f"Revenue recorded: creator={creator_id} source={event.source_type} "
        f"amount={amount} {currency} ref={external_reference_id}"
    )
    return event


def reserve(
    *,
    session: Session,
    creator_id: str,
    amount: Decimal | int | str,
    max_open: int | None = None,
    commit: bool = True,
) -> LedgerReservation:
    """
    预留余额

    单条条件 UPDATE：可用余额 >= amount（且持有中的预留数 < max_open）时才生效。
    commit=False 时由调用方在同一事务中继续写入（如提现单）后提交。
    失败时会回滚当前事务。

    Raises:
        InvalidAmountError: 金额不为正
        InsufficientBalanceError: 可用余额不足
        TooManyPendingError: 持有中的预留数已达上限
    """
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError()

    conditions = [CreatorLedger.creator_id == creator_id, _available_expr() >= _money(amount)]
    if max_open is not None:
        conditions.append(CreatorLedger.open_reservations < max_open)

    stmt = (
        update(CreatorLedger)
        .where(*conditions)
        .values(
            reserved=CreatorLedger.reserved + _money(amount),
            open_reservations=CreatorLedger.open_reservations + 1,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)
    if result.rowcount != 1:
        # 条件更新也会开启事务（SQLite 下持有写锁），必须先回滚再读原因
        session.rollback()
        ledger = get_ledger(session=session, creator_id=creator_id)
        available = ledger.available if ledger else Decimal("0.00")
        if (
            ledger is not None
            and max_open is not None
            and available >= amount
            and ledger.open_reservations >= max_open
        ):
            raise TooManyPendingError(max_open)
        logger.info(
            f"Reserve rejected: creator={creator_id} requested={amount} available={available}"
        )
        raise InsufficientBalanceError(available=available, requested=amount)

    reservation = LedgerReservation(creator_id=creator_id, amount=amount)
    session.add(reservation)
    if commit:
        session.commit()
        session.refresh(reservation)
    else:
        session.flush()
    return reservation


def _resolve(
    *,
    session: Session,
    creator_id: str,
    reservation_id: int,
    target: ReservationState,
    commit: bool,
) -> bool:
    """把 held 预留改为 target，并同步调整账本。已处理过的预留返回 False。"""
    now = utc_now()
    claim = (
        update(LedgerReservation)
        .where(
            LedgerReservation.id == reservation_id,
            LedgerReservation.creator_id == creator_id,
            LedgerReservation.state == ReservationState.held.value,
        )
        .values(state=target.value, resolved_at=now)
        .execution_options(synchronize_session=False)
    )
    if session.exec(claim).rowcount != 1:
        if commit:
            session.rollback()
        reservation = session.get(LedgerReservation, reservation_id)
        if reservation is None or reservation.creator_id != creator_id:
            raise AppError(code=404103, message="Reservation not found", status_code=404)
        return False

    amount = session.exec(
        select(LedgerReservation.amount).where(LedgerReservation.id == reservation_id)
    ).one()

    values = {
        "reserved": CreatorLedger.reserved - _money(amount),
        "open_reservations": CreatorLedger.open_reservations - 1,
        "updated_at": now,
    }
    if target is ReservationState.finalized:
        values["total_paid_out"] = CreatorLedger.total_paid_out + _money(amount)

    stmt = (
        update(CreatorLedger)
        .where(
            CreatorLedger.creator_id == creator_id,
            CreatorLedger.reserved >= _money(amount),
            CreatorLedger.open_reservations > 0,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if session.exec(stmt).rowcount != 1:
        session.rollback()
        logger.error(
            f"Ledger reserved balance is lower than reservation {reservation_id} "
            f"for creator {creator_id}"
        )
        raise AppError(code=500101, message="Ledger invariant violated", status_code=500)

    if commit:
        session.commit()
    logger.info(f"Reservation {reservation_id} {target.value}: creator={creator_id} amount={amount}")
    return True


def release(
    *, session: Session, creator_id: str, reservation_id: int, commit: bool = True
) -> bool:
    """释放预留，金额回到可用余额。重复调用为空操作，返回 False。"""
    return _resolve(
        session=session,
        creator_id=creator_id,
        reservation_id=reservation_id,
        target=ReservationState.released,
        commit=commit,
    )


def finalize(
    *, session: Session, creator_id: str, reservation_id: int, commit: bool = True
) -> bool:
    """结算预留，金额从预留转为已打款。重复调用为空操作，返回 False。"""
    return _resolve(
        session=session,
        creator_id=creator_id,
        reservation_id=reservation_id,
        target=ReservationState.finalized,
        commit=commit,
    )
