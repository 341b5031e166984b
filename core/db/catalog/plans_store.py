"""
Pricing plan storage helpers.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

import psycopg

from core.db.base import get_conn, utcnow_iso

SUBSCRIPTION_TYPES = ("free", "single", "monthly", "yearly", "lifetime", "vip")

_PLAN_COLUMNS = "id, name, slug, description, price, subscription_type, duration_days, is_active, sort_order, created_at"


def list_plans(active_only: bool = True) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    where = "WHERE is_active = TRUE" if active_only else ""
    cur.execute(f"SELECT {_PLAN_COLUMNS} FROM pricing_plans {where} ORDER BY sort_order, id")
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_plan(plan_id: int, cur=None) -> Optional[Dict]:
    """Look up a plan; pass `cur` to read inside the caller's transaction."""
    if cur is not None:
        cur.execute(f"SELECT {_PLAN_COLUMNS} FROM pricing_plans WHERE id = ?", (plan_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_PLAN_COLUMNS} FROM pricing_plans WHERE id = ?", (plan_id,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def create_plan(
    *,
    name: str,
    slug: str,
    price: Decimal,
    subscription_type: str,
    duration_days: int | None,
    description: str | None = None,
    sort_order: int = 0,
) -> int:
    if subscription_type not in SUBSCRIPTION_TYPES or subscription_type == "free":
        raise ValueError(f"Unsupported subscription type: {subscription_type}")
    if price < 0:
        raise ValueError("Plan price cannot be negative")
    if duration_days is not None and duration_days <= 0:
        raise ValueError("duration_days must be positive")

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO pricing_plans (name, slug, description, price, subscription_type, duration_days, is_active, sort_order, created_at)
            VALUES (?, ?, ?, ?, ?, ?, TRUE, ?, ?)
            RETURNING id
            """,
            (name.strip(), slug.strip().lower(), description, price, subscription_type, duration_days, sort_order, utcnow_iso()),
        )
        plan_id = int(cur.fetchone()["id"])
        conn.commit()
    except psycopg.errors.UniqueViolation:
        conn.rollback()
        raise ValueError(f"A plan with slug '{slug}' already exists") from None
    finally:
        conn.close()
    return plan_id


def set_plan_active(plan_id: int, active: bool) -> bool:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("UPDATE pricing_plans SET is_active = ? WHERE id = ?", (active, plan_id))
    updated = cur.rowcount
    conn.commit()
    conn.close()
    return updated > 0


__all__ = ["SUBSCRIPTION_TYPES", "list_plans", "get_plan", "create_plan", "set_plan_active"]
