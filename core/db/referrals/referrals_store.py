"""
Referral commission ledger and withdrawal requests (data-level only).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from core.db.base import get_conn, utcnow_iso

WITHDRAWAL_TYPES = ("cash", "subscription")
WITHDRAWAL_STATUSES = ("pending", "approved", "rejected")

_WITHDRAWAL_SELECT = """
    SELECT
      w.id, w.user_id, w.amount, w.type, w.status, w.card_number, w.card_holder,
      w.plan_id, w.admin_notes, w.approved_at, w.approved_by, w.created_at,
      u.email, u.full_name, u.referral_earnings,
      pp.name AS plan_name, pp.subscription_type AS plan_subscription_type
    FROM referral_withdrawals w
    JOIN users u ON u.id = w.user_id
    LEFT JOIN pricing_plans pp ON pp.id = w.plan_id
"""


def insert_referral_transaction(
    cur,
    *,
    referrer_id: int,
    referred_user_id: int,
    payment_id: int,
    amount: Decimal,
    now: str,
) -> bool:
    """Record a commission. Returns False if this payment already paid one."""
    cur.execute(
        """
        INSERT INTO referral_transactions (referrer_id, referred_user_id, payment_id, amount, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (payment_id) DO NOTHING
        """,
        (referrer_id, referred_user_id, payment_id, amount, now),
    )
    return cur.rowcount > 0


def list_referral_transactions(referrer_id: int, limit: int = 50) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT rt.id, rt.amount, rt.payment_id, rt.created_at, u.email AS referred_email
        FROM referral_transactions rt
        JOIN users u ON u.id = rt.referred_user_id
        WHERE rt.referrer_id = ?
        ORDER BY rt.created_at DESC, rt.id DESC
        LIMIT ?
        """,
        (referrer_id, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def insert_withdrawal(
    *,
    user_id: int,
    amount: Decimal,
    type: str,
    card_number: str | None = None,
    card_holder: str | None = None,
    plan_id: int | None = None,
) -> int:
    now = utcnow_iso()
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO referral_withdrawals
          (user_id, amount, type, status, card_number, card_holder, plan_id, created_at, updated_at)
        VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?)
        RETURNING id
        """,
        (user_id, amount, type, card_number, card_holder, plan_id, now, now),
    )
    withdrawal_id = int(cur.fetchone()["id"])
    conn.commit()
    conn.close()
    return withdrawal_id


def get_withdrawal(withdrawal_id: int) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_WITHDRAWAL_SELECT + " WHERE w.id = ?", (withdrawal_id,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def lock_withdrawal(cur, withdrawal_id: int) -> Optional[Dict]:
    cur.execute(
        """
        SELECT id, user_id, amount, type, status, plan_id
        FROM referral_withdrawals
        WHERE id = ?
        FOR UPDATE
        """,
        (withdrawal_id,),
    )
    row = cur.fetchone()
    return dict(row) if row else None


def set_withdrawal_status(cur, withdrawal_id: int, *, status: str, admin_id: int | None, notes: str | None, now: str) -> None:
    if status not in WITHDRAWAL_STATUSES:
        raise ValueError(f"Unknown withdrawal status: {status}")
    cur.execute(
        """
        UPDATE referral_withdrawals
        SET status = ?, admin_notes = ?, approved_at = ?, approved_by = ?, updated_at = ?
        WHERE id = ?
        """,
        (status, notes or None, now if status == "approved" else None, admin_id, now, withdrawal_id),
    )


def list_withdrawals(status: str | None = None, limit: int = 200) -> List[Dict]:
    params: list = []
    where = ""
    if status and status != "all":
        where = "WHERE w.status = ?"
        params.append(status)
    params.append(int(limit))
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_WITHDRAWAL_SELECT + f" {where} ORDER BY w.created_at DESC, w.id DESC LIMIT ?", params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_withdrawals_for_user(user_id: int, limit: int = 50) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_WITHDRAWAL_SELECT + " WHERE w.user_id = ? ORDER BY w.created_at DESC, w.id DESC LIMIT ?", (user_id, int(limit)))
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def pending_withdrawal_total(user_id: int) -> Decimal:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT COALESCE(SUM(amount), 0) AS total FROM referral_withdrawals WHERE user_id = ? AND status = 'pending'",
        (user_id,),
    )
    total = Decimal(cur.fetchone()["total"])
    conn.close()
    return total


def count_pending_withdrawals() -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) AS count FROM referral_withdrawals WHERE status = 'pending'")
    count = int(cur.fetchone()["count"])
    conn.close()
    return count


__all__ = [
    "WITHDRAWAL_TYPES",
    "WITHDRAWAL_STATUSES",
    "insert_referral_transaction",
    "list_referral_transactions",
    "insert_withdrawal",
    "get_withdrawal",
    "lock_withdrawal",
    "set_withdrawal_status",
    "list_withdrawals",
    "list_withdrawals_for_user",
    "pending_withdrawal_total",
    "count_pending_withdrawals",
]
