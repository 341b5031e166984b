"""
User CRUD, referral codes and the admin block switch.
"""
from __future__ import annotations

import secrets
import string
from typing import Dict, List, Optional

import psycopg

from core.db.base import get_conn, utcnow_iso
from core.db.users.auth import hash_password

REFERRAL_CODE_LENGTH = 8
_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits

USER_COLUMNS = """
    id, email, password_hash, role, active, full_name, phone,
    subscription_type, subscription_expires_at,
    has_agency_access, agency_access_expires_at,
    referral_code, referred_by, referral_earnings, created_at
"""


def generate_referral_code() -> str:
    return "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def create_user(
    email: str,
    raw_password: str,
    role: str = "user",
    full_name: str | None = None,
    referred_by: int | None = None,
) -> int:
    """
    Insert a user with a fresh referral code and return the new id.
    Retries on rare collisions against the UNIQUE referral_code column.
    """
    email_normalized = email.strip().lower()
    password_hash = hash_password(raw_password)
    now = utcnow_iso()

    for _ in range(5):
        conn = get_conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                INSERT INTO users (email, password_hash, role, full_name, referral_code, referred_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                (email_normalized, password_hash, role, full_name, generate_referral_code(), referred_by, now),
            )
            row = cur.fetchone()
            conn.commit()
            return int(row["id"])
        except psycopg.errors.UniqueViolation as exc:
            conn.rollback()
            if "referral_code" not in str(exc):
                raise
        finally:
            conn.close()
    raise RuntimeError("Failed to generate unique referral_code after retries")


def _fetch_one(where: str, value) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE {where} = ?", (value,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def get_user_by_email(email: str) -> Dict | None:
    return _fetch_one("email", (email or "").strip().lower())


def get_user_by_id(user_id: int) -> Optional[Dict]:
    """Look up a user by numeric id. Returns dict or None."""
    return _fetch_one("id", user_id)


def get_user_by_referral_code(code: str) -> Optional[Dict]:
    code = (code or "").strip().upper()
    if not code:
        return None
    return _fetch_one("referral_code", code)


def list_users(search: str = "", limit: int = 200) -> List[Dict]:
    """Return users newest first, optionally filtered by email / name substring."""
    conn = get_conn()
    cur = conn.cursor()
    pattern = f"%{search.strip().lower()}%"
    cur.execute(
        f"""
        SELECT {USER_COLUMNS},
               (SELECT COUNT(*) FROM users r WHERE r.referred_by = users.id) AS referred_count
        FROM users
        WHERE lower(email) LIKE ? OR lower(coalesce(full_name, '')) LIKE ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (pattern, pattern, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def count_referred_users(user_id: int) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) AS count FROM users WHERE referred_by = ?", (user_id,))
    count = int(cur.fetchone()["count"])
    conn.close()
    return count


def set_user_active(user_id: int, active: bool) -> bool:
    """Block or unblock an account. Blocked users lose their sessions."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("UPDATE users SET active=? WHERE id=?", (1 if active else 0, user_id))
    updated = cur.rowcount
    if not active:
        cur.execute("DELETE FROM sessions WHERE user_id=?", (user_id,))
    conn.commit()
    conn.close()
    return updated > 0


def update_user_profile(user_id: int, full_name: str | None, phone: str | None) -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET full_name=?, phone=? WHERE id=?",
        ((full_name or "").strip() or None, (phone or "").strip() or None, user_id),
    )
    conn.commit()
    conn.close()


__all__ = [
    "REFERRAL_CODE_LENGTH",
    "generate_referral_code",
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_referral_code",
    "list_users",
    "count_referred_users",
    "set_user_active",
    "update_user_profile",
]
