"""
User-related storage helpers, split by responsibility.
"""
from core.db.users.auth import hash_password, password_problems, verify_password
from core.db.users.user_store import (
    count_referred_users,
    create_user,
    generate_referral_code,
    get_user_by_email,
    get_user_by_id,
    get_user_by_referral_code,
    list_users,
    set_user_active,
    update_user_profile,
)
from core.db.users.sessions import (
    create_session,
    delete_session,
    delete_sessions_for_user,
    get_session,
    purge_expired_sessions,
    touch_session,
    SESSION_TIMEOUT_MINUTES,
)

__all__ = [
    "hash_password",
    "verify_password",
    "password_problems",
    "create_user",
    "generate_referral_code",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_referral_code",
    "list_users",
    "count_referred_users",
    "set_user_active",
    "update_user_profile",
    "create_session",
    "delete_session",
    "delete_sessions_for_user",
    "get_session",
    "purge_expired_sessions",
    "touch_session",
    "SESSION_TIMEOUT_MINUTES",
]
