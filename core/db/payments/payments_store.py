"""
Payment storage helpers (data-level only).

Status transitions live in core.billing.approval; this module only reads and writes rows.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from core.db.base import get_conn, utcnow_iso

PAYMENT_STATUSES = ("pending", "approved", "rejected")

_DETAIL_SELECT = """
    SELECT
      p.id, p.user_id, p.plan_id, p.course_id, p.amount, p.status, p.receipt_url,
      p.payment_method, p.admin_notes, p.approved_at, p.approved_by, p.created_at, p.updated_at,
      u.email, u.full_name,
      pp.name AS plan_name, pp.subscription_type AS plan_subscription_type, pp.duration_days AS plan_duration_days,
      c.title AS course_title
    FROM payments p
    JOIN users u ON u.id = p.user_id
    LEFT JOIN pricing_plans pp ON pp.id = p.plan_id
    LEFT JOIN courses c ON c.id = p.course_id
"""


def insert_payment(
    *,
    user_id: int,
    amount: Decimal,
    plan_id: int | None = None,
    course_id: int | None = None,
    receipt_url: str | None = None,
    payment_method: str | None = None,
) -> int:
    now = utcnow_iso()
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO payments (user_id, plan_id, course_id, amount, status, receipt_url, payment_method, created_at, updated_at)
        VALUES (?, ?, ?, ?, 'pending', ?, ?, ?, ?)
        RETURNING id
        """,
        (user_id, plan_id, course_id, amount, receipt_url, payment_method, now, now),
    )
    payment_id = int(cur.fetchone()["id"])
    conn.commit()
    conn.close()
    return payment_id


def get_payment(payment_id: int) -> Optional[Dict]:
    """Payment joined with user, plan and course display fields."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_DETAIL_SELECT + " WHERE p.id = ?", (payment_id,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def lock_payment(cur, payment_id: int) -> Optional[Dict]:
    """Fetch a payment row FOR UPDATE inside an open transaction."""
    cur.execute(
        """
        SELECT id, user_id, plan_id, course_id, amount, status
        FROM payments
        WHERE id = ?
        FOR UPDATE
        """,
        (payment_id,),
    )
    row = cur.fetchone()
    return dict(row) if row else None


def set_payment_status(cur, payment_id: int, *, status: str, admin_id: int | None, notes: str | None, now: str) -> None:
    if status not in PAYMENT_STATUSES:
        raise ValueError(f"Unknown payment status: {status}")
    cur.execute(
        """
        UPDATE payments
        SET status = ?, admin_notes = ?, approved_at = ?, approved_by = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            status,
            notes or None,
            now if status == "approved" else None,
            admin_id,
            now,
            payment_id,
        ),
    )


def list_payments(status: str | None = None, search: str = "", limit: int = 200) -> List[Dict]:
    """Newest first; status filter and case-insensitive search over email / full name."""
    clauses = []
    params: list = []
    if status and status != "all":
        clauses.append("p.status = ?")
        params.append(status)
    if search.strip():
        pattern = f"%{search.strip().lower()}%"
        clauses.append("(lower(u.email) LIKE ? OR lower(coalesce(u.full_name, '')) LIKE ?)")
        params.extend([pattern, pattern])
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    params.append(int(limit))

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_DETAIL_SELECT + f" {where} ORDER BY p.created_at DESC, p.id DESC LIMIT ?", params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_payments_for_user(user_id: int, limit: int = 50) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_DETAIL_SELECT + " WHERE p.user_id = ? ORDER BY p.created_at DESC, p.id DESC LIMIT ?", (user_id, int(limit)))
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def count_payments_by_status() -> Dict[str, int]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT status, COUNT(*) AS count FROM payments GROUP BY status")
    rows = cur.fetchall()
    conn.close()
    counts = {s: 0 for s in PAYMENT_STATUSES}
    for r in rows:
        counts[r["status"]] = int(r["count"])
    return counts


__all__ = [
    "PAYMENT_STATUSES",
    "insert_payment",
    "get_payment",
    "lock_payment",
    "set_payment_status",
    "list_payments",
    "list_payments_for_user",
    "count_payments_by_status",
]
