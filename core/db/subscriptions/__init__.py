"""
Subscription storage re-exports.
"""
from core.db.subscriptions.subs_store import (
    NON_EXPIRING_TYPES,
    add_referral_earnings,
    apply_subscription,
    deduct_referral_earnings,
    expire_due_subscriptions,
    get_expiring_subscriptions,
    grant_course_access,
    lock_user_subscription,
    revoke_expired_agency_access,
)

__all__ = [
    "NON_EXPIRING_TYPES",
    "add_referral_earnings",
    "apply_subscription",
    "deduct_referral_earnings",
    "expire_due_subscriptions",
    "get_expiring_subscriptions",
    "grant_course_access",
    "lock_user_subscription",
    "revoke_expired_agency_access",
]
