"""
Course catalogue and enrolment lookups.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from core.db.base import get_conn


def effective_course_price(course: Dict) -> Decimal:
    """Discount price wins when set; otherwise the list price."""
    discount = course.get("discount_price")
    if discount is not None:
        return Decimal(discount)
    return Decimal(course.get("price") or 0)


def get_course(course_id: int) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT id, title, slug, price, discount_price, is_published FROM courses WHERE id = ?",
        (course_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def list_published_courses() -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT id, title, slug, price, discount_price FROM courses WHERE is_published = TRUE ORDER BY title"
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_user_courses(user_id: int) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT uc.course_id, uc.purchased_at, c.title, c.slug
        FROM user_courses uc
        JOIN courses c ON c.id = uc.course_id
        WHERE uc.user_id = ?
        ORDER BY uc.purchased_at DESC
        """,
        (user_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def user_has_any_course(user_id: int) -> bool:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT 1 FROM user_courses WHERE user_id = ? LIMIT 1", (user_id,))
    row = cur.fetchone()
    conn.close()
    return row is not None


__all__ = [
    "effective_course_price",
    "get_course",
    "list_published_courses",
    "list_user_courses",
    "user_has_any_course",
]
