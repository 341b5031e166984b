"""
Subscription reminder history.

One row per (user, reminder_type, expires_at): a renewed subscription has a new
expiry and therefore gets a fresh set of reminders.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from core.db.base import get_conn

REMINDER_TYPES = ("7_days", "3_days", "1_day", "expired")
PAGE_SIZE = 50


def record_reminder(
    cur,
    *,
    user_id: int,
    reminder_type: str,
    subscription_type: str,
    expires_at: str | None,
    sent_at: str,
) -> bool:
    """Insert a reminder row. Returns False if it was already logged."""
    cur.execute(
        """
        INSERT INTO subscription_reminders (user_id, reminder_type, subscription_type, expires_at, sent_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (user_id, reminder_type, expires_at) DO NOTHING
        """,
        (user_id, reminder_type, subscription_type, expires_at, sent_at),
    )
    return cur.rowcount > 0


def get_sent_reminder_keys(user_ids: List[int]) -> Set[Tuple[int, str, Optional[str]]]:
    """Return {(user_id, reminder_type, expires_at)} already logged for these users."""
    if not user_ids:
        return set()
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT user_id, reminder_type, expires_at FROM subscription_reminders WHERE user_id = ANY(?)",
        (list(user_ids),),
    )
    rows = cur.fetchall()
    conn.close()
    return {(int(r["user_id"]), r["reminder_type"], r["expires_at"]) for r in rows}


def _filter_clause(
    reminder_type: str | None,
    subscription_type: str | None,
    date_from: str | None,
    date_to: str | None,
) -> Tuple[str, list]:
    clauses = []
    params: list = []
    if reminder_type and reminder_type != "all":
        clauses.append("sr.reminder_type = ?")
        params.append(reminder_type)
    if subscription_type and subscription_type != "all":
        clauses.append("sr.subscription_type = ?")
        params.append(subscription_type)
    if date_from:
        clauses.append("sr.sent_at >= ?")
        params.append(date_from)
    if date_to:
        clauses.append("sr.sent_at <= ?")
        params.append(f"{date_to}T23:59:59")
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def list_reminders(
    *,
    reminder_type: str | None = None,
    subscription_type: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: int = 0,
    page_size: int = PAGE_SIZE,
) -> Tuple[List[Dict], int]:
    """Return (rows, total_count) newest first, joined with user email / name."""
    where, params = _filter_clause(reminder_type, subscription_type, date_from, date_to)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) AS count FROM subscription_reminders sr {where}", params)
    total = int(cur.fetchone()["count"])
    cur.execute(
        f"""
        SELECT sr.id, sr.user_id, sr.reminder_type, sr.subscription_type, sr.expires_at, sr.sent_at,
               u.email, u.full_name
        FROM subscription_reminders sr
        JOIN users u ON u.id = sr.user_id
        {where}
        ORDER BY sr.sent_at DESC, sr.id DESC
        LIMIT ? OFFSET ?
        """,
        params + [int(page_size), max(0, int(page)) * int(page_size)],
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows], total


def reminder_summary(now: datetime | None = None) -> Dict[str, int]:
    now = now or datetime.utcnow()
    today = now.date().isoformat()
    week_ago = (now - timedelta(days=7)).isoformat(timespec="seconds")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
          COUNT(*) FILTER (WHERE sent_at >= ?) AS sent_today,
          COUNT(*) FILTER (WHERE sent_at >= ?) AS sent_this_week,
          COUNT(*) FILTER (WHERE reminder_type = '7_days') AS count_7_days,
          COUNT(*) FILTER (WHERE reminder_type = '3_days') AS count_3_days,
          COUNT(*) FILTER (WHERE reminder_type = '1_day') AS count_1_day,
          COUNT(*) FILTER (WHERE reminder_type = 'expired') AS count_expired
        FROM subscription_reminders
        """,
        (today, week_ago),
    )
    row = cur.fetchone()
    conn.close()
    return {k: int(v or 0) for k, v in dict(row).items()}


__all__ = [
    "REMINDER_TYPES",
    "PAGE_SIZE",
    "record_reminder",
    "get_sent_reminder_keys",
    "list_reminders",
    "reminder_summary",
]
