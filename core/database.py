"""
Single import point for the storage layer used by the web app and scripts.
"""
from core.db.base import get_conn, ping, transaction, utcnow_iso
from core.db.schema import ensure_admin_from_env, init_db, seed_default_plans
from core.db.audit import list_audit_entries, write_audit
from core.db.catalog import (
    SUBSCRIPTION_TYPES,
    create_plan,
    effective_course_price,
    get_active_categories,
    get_course,
    get_plan,
    get_published_lessons,
    get_published_prompts,
    list_plans,
    list_published_courses,
    list_user_courses,
    set_plan_active,
    user_has_any_course,
)
from core.db.payments import (
    PAYMENT_STATUSES,
    count_payments_by_status,
    get_payment,
    list_payments,
    list_payments_for_user,
)
from core.db.referrals import (
    WITHDRAWAL_STATUSES,
    count_pending_withdrawals,
    get_withdrawal,
    list_withdrawals,
)
from core.db.reminders import PAGE_SIZE, REMINDER_TYPES, list_reminders, reminder_summary
from core.db.users import (
    SESSION_TIMEOUT_MINUTES,
    create_session,
    create_user,
    delete_session,
    delete_sessions_for_user,
    get_session,
    get_user_by_email,
    get_user_by_id,
    get_user_by_referral_code,
    list_users,
    password_problems,
    set_user_active,
    update_user_profile,
    touch_session,
    verify_password,
)

__all__ = [
    "get_conn",
    "ping",
    "transaction",
    "utcnow_iso",
    "init_db",
    "seed_default_plans",
    "ensure_admin_from_env",
    "list_audit_entries",
    "write_audit",
    "SUBSCRIPTION_TYPES",
    "create_plan",
    "effective_course_price",
    "get_active_categories",
    "get_course",
    "get_plan",
    "get_published_lessons",
    "get_published_prompts",
    "list_plans",
    "list_published_courses",
    "list_user_courses",
    "set_plan_active",
    "user_has_any_course",
    "PAYMENT_STATUSES",
    "count_payments_by_status",
    "get_payment",
    "list_payments",
    "list_payments_for_user",
    "WITHDRAWAL_STATUSES",
    "count_pending_withdrawals",
    "get_withdrawal",
    "list_withdrawals",
    "PAGE_SIZE",
    "REMINDER_TYPES",
    "list_reminders",
    "reminder_summary",
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "create_user",
    "delete_session",
    "delete_sessions_for_user",
    "get_session",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_referral_code",
    "list_users",
    "password_problems",
    "set_user_active",
    "update_user_profile",
    "touch_session",
    "verify_password",
]
