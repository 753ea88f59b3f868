"""CRUD 操作模块"""
from .accounts import (
    apply_verification_result,
    begin_verification,
    disable_account,
    get_account,
    ineligibility_reasons,
    is_payout_eligible,
)
from .ledger import (
    finalize,
    get_ledger,
    get_or_create_ledger,
    record_event,
    release,
    reserve,
)
from .payouts import (
    count_open_payouts,
    create_payout,
    find_stale_payouts,
    get_payout,
    get_payout_by_external_id,
    list_history,
    list_payouts,
    transition_status,
)

__all__ = [
    "apply_verification_result",
    "begin_verification",
    "disable_account",
    "get_account",
    "ineligibility_reasons",
    "is_payout_eligible",
    "finalize",
    "get_ledger",
    "get_or_create_ledger",
    "record_event",
    "release",
    "reserve",
    "count_open_payouts",
    "create_payout",
    "find_stale_payouts",
    "get_payout",
    "get_payout_by_external_id",
    "list_history",
    "list_payouts",
    "transition_status",
]
