"""
XML sitemap for the public site.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Tuple
from xml.sax.saxutils import escape

from core.billing.plans import parse_ts
from core.notifications.templates import public_base_url

# (path, priority, changefreq)
STATIC_PAGES: List[Tuple[str, str, str]] = [
    ("/", "1.0", "daily"),
    ("/prompts", "0.9", "daily"),
    ("/lessons", "0.8", "weekly"),
    ("/faq", "0.6", "monthly"),
    ("/help", "0.5", "monthly"),
    ("/contact", "0.5", "monthly"),
    ("/terms", "0.3", "yearly"),
    ("/privacy", "0.3", "yearly"),
    ("/payment-terms", "0.3", "yearly"),
]


def _lastmod(row: Dict, today: str) -> str:
    dt = parse_ts(row.get("updated_at"))
    return dt.date().isoformat() if dt else today


def _url(base: str, path: str, lastmod: str, changefreq: str, priority: str) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(base + path)}</loc>\n"
        f"    <lastmod>{lastmod}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        "  </url>\n"
    )


def build_sitemap(
    prompts: Iterable[Dict],
    categories: Iterable[Dict],
    lessons: Iterable[Dict],
    base_url: str | None = None,
    today: date | None = None,
) -> str:
    base = (base_url or public_base_url()).rstrip("/")
    today_str = (today or date.today()).isoformat()

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n',
    ]
    for path, priority, changefreq in STATIC_PAGES:
        parts.append(_url(base, path, today_str, changefreq, priority))
    for p in prompts:
        parts.append(_url(base, f"/prompt/{p['slug']}", _lastmod(p, today_str), "weekly", "0.8"))
    for c in categories:
        parts.append(_url(base, f"/prompts?category={c['slug']}", _lastmod(c, today_str), "weekly", "0.7"))
    for lesson in lessons:
        parts.append(_url(base, f"/lessons/{lesson['slug']}", _lastmod(lesson, today_str), "weekly", "0.7"))
    parts.append("</urlset>")
    return "".join(parts)


__all__ = ["STATIC_PAGES", "build_sitemap"]
