"""
状态机定义

认证状态和提现状态都只能按下表迁移，任何表外的迁移都会被拒绝。
表是纯数据，服务层和对账层共用同一份定义。
"""
from creator_ledger.api.errors import InvalidTransitionError
from creator_ledger.enums import PayoutStatus, VerificationState

VERIFICATION_TRANSITIONS: dict[VerificationState, frozenset[VerificationState]] = {
    VerificationState.unset: frozenset({VerificationState.pending}),
    VerificationState.pending: frozenset({VerificationState.verified, VerificationState.failed}),
    VerificationState.verified: frozenset({VerificationState.pending, VerificationState.failed}),
    VerificationState.failed: frozenset({VerificationState.pending}),
}

# paid / failed 为终态，只能前进不能回退
PAYOUT_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.requested: frozenset({PayoutStatus.submitted, PayoutStatus.failed}),
    PayoutStatus.submitted: frozenset(
        {PayoutStatus.in_transit, PayoutStatus.paid, PayoutStatus.failed}
    ),
    PayoutStatus.in_transit: frozenset({PayoutStatus.paid, PayoutStatus.failed}),
    PayoutStatus.paid: frozenset(),
    PayoutStatus.failed: frozenset(),
}


def can_verify(current: VerificationState | str, target: VerificationState | str) -> bool:
    return VerificationState(target) in VERIFICATION_TRANSITIONS[VerificationState(current)]


def can_transition(current: PayoutStatus | str, target: PayoutStatus | str) -> bool:
    return PayoutStatus(target) in PAYOUT_TRANSITIONS[PayoutStatus(current)]


def ensure_verification_transition(
    current: VerificationState | str, target: VerificationState | str
) -> None:
    """
    校验认证状态迁移

    Raises:
        InvalidTransitionError: 迁移不在表中
    """
    if not can_verify(current, target):
        raise InvalidTransitionError(
            current=VerificationState(current).value,
            target=VerificationState(target).value,
        )


def ensure_payout_transition(current: PayoutStatus | str, target: PayoutStatus | str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            current=PayoutStatus(current).value,
            target=PayoutStatus(target).value,
        )
