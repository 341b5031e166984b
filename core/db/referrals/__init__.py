"""
Referral ledger and withdrawal storage re-exports.
"""
from core.db.referrals.referrals_store import (
    WITHDRAWAL_STATUSES,
    WITHDRAWAL_TYPES,
    count_pending_withdrawals,
    get_withdrawal,
    insert_referral_transaction,
    insert_withdrawal,
    list_referral_transactions,
    list_withdrawals,
    list_withdrawals_for_user,
    lock_withdrawal,
    pending_withdrawal_total,
    set_withdrawal_status,
)

__all__ = [
    "WITHDRAWAL_STATUSES",
    "WITHDRAWAL_TYPES",
    "count_pending_withdrawals",
    "get_withdrawal",
    "insert_referral_transaction",
    "insert_withdrawal",
    "list_referral_transactions",
    "list_withdrawals",
    "list_withdrawals_for_user",
    "lock_withdrawal",
    "pending_withdrawal_total",
    "set_withdrawal_status",
]
