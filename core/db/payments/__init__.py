"""
Payment storage re-exports.
"""
from core.db.payments.payments_store import (
    PAYMENT_STATUSES,
    count_payments_by_status,
    get_payment,
    insert_payment,
    list_payments,
    list_payments_for_user,
    lock_payment,
    set_payment_status,
)

__all__ = [
    "PAYMENT_STATUSES",
    "count_payments_by_status",
    "get_payment",
    "insert_payment",
    "list_payments",
    "list_payments_for_user",
    "lock_payment",
    "set_payment_status",
]
