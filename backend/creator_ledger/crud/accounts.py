"""
创作者账户 CRUD 操作（认证状态跟踪）

认证状态只能按 state_machine.VERIFICATION_TRANSITIONS 迁移，
迁移本身是对 verification_state 的条件更新，并发回调不会互相覆盖。
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from creator_ledger.api.errors import AppError, InvalidTransitionError, account_not_found
from creator_ledger.enums import VerificationState
from creator_ledger.models import CreatorAccount, utc_now
from creator_ledger.state_machine import ensure_verification_transition

logger = logging.getLogger(__name__)

# 条件更新失败（并发修改）时的重试次数
_CAS_ATTEMPTS = 3

REASON_VERIFICATION_REQUIRED = "verification_required"
REASON_ACCOUNT_DISABLED = "account_disabled"
REASON_PAYOUT_ACCOUNT_MISSING = "payout_account_missing"


def get_account(*, session: Session, creator_id: str) -> CreatorAccount | None:
    stmt = (
        select(CreatorAccount)
        .where(CreatorAccount.creator_id == creator_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(stmt).first()


def ineligibility_reasons(account: CreatorAccount | None) -> list[str]:
    """返回账户不能提现的原因列表，空列表表示可以提现"""
    if account is None:
        return [REASON_VERIFICATION_REQUIRED, REASON_PAYOUT_ACCOUNT_MISSING]
    reasons = []
    if account.is_disabled:
        reasons.append(REASON_ACCOUNT_DISABLED)
    if account.verification_state != VerificationState.verified:
        reasons.append(REASON_VERIFICATION_REQUIRED)
    if not account.external_account_id:
        reasons.append(REASON_PAYOUT_ACCOUNT_MISSING)
    return reasons


def is_payout_eligible(*, session: Session, creator_id: str) -> bool:
    """是否可以发起提现（已认证、未停用、有收款账户）"""
    account = get_account(session=session, creator_id=creator_id)
    return not ineligibility_reasons(account)


def _create_account(
    *,
    session: Session,
    creator_id: str,
    state: VerificationState,
    external_account_id: str | None,
    note: str | None = None,
) -> CreatorAccount | None:
    """创建账户；并发创建冲突时返回 None，由调用方重新读取"""
    account = CreatorAccount(
        creator_id=creator_id,
        external_account_id=external_account_id,
        verification_state=state,
        verification_note=note,
    )
    session.add(account)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        return None
    session.refresh(account)
    logger.info(f"Creator account created: creator={creator_id} state={state.value}")
    return account


def _compare_and_set_state(
    *,
    session: Session,
    account: CreatorAccount,
    target: VerificationState,
    note: str | None,
    external_account_id: str | None = None,
) -> bool:
    now = utc_now()
    values = {
        "verification_state": target.value,
        "verification_note": note,
        "updated_at": now,
    }
    if target == VerificationState.verified:
        values["verified_at"] = now
    if external_account_id:
        values["external_account_id"] = external_account_id

    stmt = (
        update(CreatorAccount)
        .where(
            CreatorAccount.id == account.id,
            CreatorAccount.verification_state == VerificationState(account.verification_state).value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if session.exec(stmt).rowcount != 1:
        session.rollback()
        return False
    session.commit()
    logger.info(
        f"Verification state changed: creator={account.creator_id} "
        f"{VerificationState(account.verification_state).value} -> {target.value}"
    )
    return True


def begin_verification(
    *, session: Session, creator_id: str, external_account_id: str | None = None
) -> CreatorAccount:
    """
    开始（或重新开始）打款账户认证

    - 账户不存在：创建为 pending
    - failed：重新进入 pending
    - pending / verified：保持不变；verified 账户更换收款账户时重新进入 pending

    Raises:
        AppError: 账户已停用
    """
    for _ in range(_CAS_ATTEMPTS):
        account = get_account(session=session, creator_id=creator_id)
        if account is None:
            created = _create_account(
                session=session,
                creator_id=creator_id,
                state=VerificationState.pending,
                external_account_id=external_account_id,
            )
            if created is not None:
                return created
            continue

        if account.is_disabled:
            raise AppError(code=403102, message="Creator account is disabled", status_code=403)

        state = VerificationState(account.verification_state)
        account_changed = bool(
            external_account_id and external_account_id != account.external_account_id
        )
        if state in (VerificationState.unset, VerificationState.failed) or (
            state == VerificationState.verified and account_changed
        ):
            if _compare_and_set_state(
                session=session,
                account=account,
                target=VerificationState.pending,
                note=None,
                external_account_id=external_account_id,
            ):
                return get_account(session=session, creator_id=creator_id)
            continue

        if account_changed:
            account.external_account_id = external_account_id
            account.updated_at = utc_now()
            session.add(account)
            session.commit()
            session.refresh(account)
        return account

    raise AppError(code=409103, message="Creator account is being modified concurrently", status_code=409)


def apply_verification_result(
    *,
    session: Session,
    creator_id: str,
    result: VerificationState | str,
    note: str | None = None,
) -> CreatorAccount:
    """
    应用外部认证服务的结果

    相同状态视为空操作；表外的迁移被拒绝。
    离开 verified 后，尚未提交给支付处理方的提现会在提交前的二次检查中被拦截。

    Raises:
        InvalidTransitionError: 迁移不在状态表中
    """
    target = VerificationState(result)
    for _ in range(_CAS_ATTEMPTS):
        account = get_account(session=session, creator_id=creator_id)
        if account is None:
            # 不存在的账户视为 unset
            ensure_verification_transition(VerificationState.unset, target)
            created = _create_account(
                session=session,
                creator_id=creator_id,
                state=target,
                external_account_id=None,
                note=note,
            )
            if created is not None:
                return created
            continue

        current = VerificationState(account.verification_state)
        if current == target:
            return account
        ensure_verification_transition(current, target)
        if _compare_and_set_state(session=session, account=account, target=target, note=note):
            return get_account(session=session, creator_id=creator_id)

    raise InvalidTransitionError(current="unknown", target=target.value)


def disable_account(
    *, session: Session, creator_id: str, note: str | None = None
) -> CreatorAccount:
    """停用账户（软删除），停用后不能再提现"""
    account = get_account(session=session, creator_id=creator_id)
    if account is None:
        raise account_not_found()
    if account.is_disabled:
        return account
    account.is_disabled = True
    account.verification_note = note or account.verification_note
    account.updated_at = utc_now()
    session.add(account)
    session.commit()
    session.refresh(account)
    logger.warning(f"Creator account disabled: creator={creator_id} note={note}")
    return account
