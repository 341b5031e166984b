"""
Read-only queries over published content (used by the sitemap).
"""
from __future__ import annotations

from typing import Dict, List

from core.db.base import get_conn


def _select(sql: str) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_published_prompts() -> List[Dict]:
    return _select(
        "SELECT slug, updated_at FROM prompts WHERE is_published = TRUE ORDER BY updated_at DESC NULLS LAST, id DESC"
    )


def get_active_categories() -> List[Dict]:
    return _select("SELECT slug, updated_at FROM categories WHERE is_active = TRUE ORDER BY id")


def get_published_lessons() -> List[Dict]:
    return _select("SELECT slug, updated_at FROM lessons WHERE is_published = TRUE ORDER BY id")


__all__ = ["get_published_prompts", "get_active_categories", "get_published_lessons"]
