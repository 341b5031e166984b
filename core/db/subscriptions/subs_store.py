"""
Subscription state stored on the users row (data-level only).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from core.db.base import get_conn

# Types that never expire on their own.
NON_EXPIRING_TYPES = ("free", "lifetime")


def lock_user_subscription(cur, user_id: int) -> Optional[Dict]:
    """Fetch a user's subscription + referral fields FOR UPDATE inside an open transaction."""
    cur.execute(
        """
        SELECT id, email, full_name, subscription_type, subscription_expires_at,
               has_agency_access, agency_access_expires_at, referred_by, referral_earnings
        FROM users
        WHERE id = ?
        FOR UPDATE
        """,
        (user_id,),
    )
    row = cur.fetchone()
    return dict(row) if row else None


def apply_subscription(
    cur,
    user_id: int,
    *,
    subscription_type: str,
    expires_at: str | None,
    grant_agency: bool = False,
    agency_expires_at: str | None = None,
) -> None:
    """Write a new subscription type/expiry. Agency access is only ever granted here, never revoked."""
    if grant_agency:
        cur.execute(
            """
            UPDATE users
            SET subscription_type = ?, subscription_expires_at = ?,
                has_agency_access = TRUE, agency_access_expires_at = ?
            WHERE id = ?
            """,
            (subscription_type, expires_at, agency_expires_at, user_id),
        )
    else:
        cur.execute(
            "UPDATE users SET subscription_type = ?, subscription_expires_at = ? WHERE id = ?",
            (subscription_type, expires_at, user_id),
        )


def grant_course_access(cur, *, user_id: int, course_id: int, payment_id: int | None, now: str) -> bool:
    """Enrol a user in a course. Returns False when the user was already enrolled."""
    cur.execute(
        """
        INSERT INTO user_courses (user_id, course_id, payment_id, purchased_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (user_id, course_id) DO NOTHING
        """,
        (user_id, course_id, payment_id, now),
    )
    return cur.rowcount > 0


def add_referral_earnings(cur, user_id: int, amount: Decimal) -> None:
    cur.execute(
        "UPDATE users SET referral_earnings = referral_earnings + ? WHERE id = ?",
        (amount, user_id),
    )


def deduct_referral_earnings(cur, user_id: int, amount: Decimal) -> None:
    """Subtract from earnings, floored at zero."""
    cur.execute(
        "UPDATE users SET referral_earnings = GREATEST(referral_earnings - ?, 0) WHERE id = ?",
        (amount, user_id),
    )


def expire_due_subscriptions(now: str, exclude_user_ids=()) -> int:
    """
    Downgrade time-limited subscriptions whose expiry passed. The expiry timestamp is kept.
    Users in exclude_user_ids are left for a later run.
    """
    sql = """
        UPDATE users
        SET subscription_type = 'free'
        WHERE subscription_type NOT IN ('free', 'lifetime')
          AND subscription_expires_at IS NOT NULL
          AND subscription_expires_at <= ?
    """
    params: list = [now]
    if exclude_user_ids:
        sql += " AND NOT (id = ANY(?::int[]))"
        params.append([int(i) for i in exclude_user_ids])

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, tuple(params))
    count = cur.rowcount
    conn.commit()
    conn.close()
    return count


def revoke_expired_agency_access(now: str) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE users
        SET has_agency_access = FALSE
        WHERE has_agency_access = TRUE
          AND agency_access_expires_at IS NOT NULL
          AND agency_access_expires_at <= ?
        """,
        (now,),
    )
    count = cur.rowcount
    conn.commit()
    conn.close()
    return count


def get_expiring_subscriptions() -> List[Dict]:
    """Active users holding a paid, time-limited subscription."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id AS user_id, email, full_name, subscription_type, subscription_expires_at
        FROM users
        WHERE active = 1
          AND email IS NOT NULL AND email <> ''
          AND subscription_type NOT IN ('free', 'lifetime')
          AND subscription_expires_at IS NOT NULL
        ORDER BY subscription_expires_at
        """
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


__all__ = [
    "NON_EXPIRING_TYPES",
    "lock_user_subscription",
    "apply_subscription",
    "grant_course_access",
    "add_referral_earnings",
    "deduct_referral_earnings",
    "expire_due_subscriptions",
    "revoke_expired_agency_access",
    "get_expiring_subscriptions",
]
