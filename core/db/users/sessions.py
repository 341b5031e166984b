"""
Server-side login sessions with a sliding inactivity timeout.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from core.billing.plans import parse_ts
from core.db.base import get_conn

SESSION_TIMEOUT_MINUTES = 30


def _window(now: datetime) -> tuple[str, str]:
    expires = now + timedelta(minutes=SESSION_TIMEOUT_MINUTES)
    return now.isoformat(timespec="seconds"), expires.isoformat(timespec="seconds")


def _run(sql: str, params: tuple) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    count = cur.rowcount
    conn.commit()
    conn.close()
    return count


def create_session(user_id: int) -> str:
    token = secrets.token_urlsafe(32)
    now_iso, expires_iso = _window(datetime.utcnow())
    _run(
        "INSERT INTO sessions (id, user_id, created_at, last_seen_at, expires_at) VALUES (?, ?, ?, ?, ?)",
        (token, user_id, now_iso, now_iso, expires_iso),
    )
    return token


def get_session(session_id: str) -> Optional[Dict]:
    """The session row, or None when unknown or timed out (timed-out rows are deleted)."""
    if not session_id:
        return None

    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT id, user_id, last_seen_at, expires_at FROM sessions WHERE id = ?", (session_id,))
    row = cur.fetchone()
    conn.close()
    if not row:
        return None

    expires = parse_ts(row["expires_at"])
    if expires is None or expires < datetime.utcnow():
        delete_session(session_id)
        return None
    return dict(row)


def touch_session(session_id: str) -> None:
    if session_id:
        now_iso, expires_iso = _window(datetime.utcnow())
        _run("UPDATE sessions SET last_seen_at = ?, expires_at = ? WHERE id = ?", (now_iso, expires_iso, session_id))


def delete_session(session_id: str) -> None:
    if session_id:
        _run("DELETE FROM sessions WHERE id = ?", (session_id,))


def delete_sessions_for_user(user_id: int) -> int:
    """Log a user out everywhere (used when an admin blocks the account)."""
    return _run("DELETE FROM sessions WHERE user_id = ?", (user_id,))


def purge_expired_sessions(now: str) -> int:
    return _run("DELETE FROM sessions WHERE expires_at < ?", (now,))


__all__ = [
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "get_session",
    "touch_session",
    "delete_session",
    "delete_sessions_for_user",
    "purge_expired_sessions",
]
