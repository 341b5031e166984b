from datetime import date

import pytest

from app import sitemap
from app.routes import public

TODAY = date(2025, 3, 1)


def test_build_sitemap_lists_static_and_dynamic_pages():
    xml = sitemap.build_sitemap(
        prompts=[{"slug": "cold-email", "updated_at": "2025-02-10T08:00:00"}],
        categories=[{"slug": "marketing", "updated_at": None}],
        lessons=[{"slug": "intro", "updated_at": "2025-01-05T00:00:00+00:00"}],
        base_url="https://mpbs.example/",
        today=TODAY,
    )

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert xml.count("<url>") == len(sitemap.STATIC_PAGES) + 3
    assert "<loc>https://mpbs.example/</loc>" in xml
    assert "<loc>https://mpbs.example/prompt/cold-email</loc>\n    <lastmod>2025-02-10</lastmod>" in xml
    assert "<loc>https://mpbs.example/lessons/intro</loc>\n    <lastmod>2025-01-05</lastmod>" in xml
    # Rows without a timestamp fall back to today
    assert "<loc>https://mpbs.example/prompts?category=marketing</loc>\n    <lastmod>2025-03-01</lastmod>" in xml
    assert xml.rstrip().endswith("</urlset>")


def test_build_sitemap_escapes_urls():
    xml = sitemap.build_sitemap(
        prompts=[{"slug": "a&b<c>"}], categories=[], lessons=[], base_url="https://mpbs.example", today=TODAY
    )
    assert "/prompt/a&amp;b&lt;c&gt;" in xml
    assert "a&b<c>" not in xml


def test_build_sitemap_uses_public_base_url(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://other.example")
    xml = sitemap.build_sitemap([], [], [], today=TODAY)
    assert "<loc>https://other.example/terms</loc>" in xml


def test_sitemap_route_sets_cache_headers(monkeypatch):
    monkeypatch.setattr(public, "get_published_prompts", lambda: [{"slug": "p1", "updated_at": None}])
    monkeypatch.setattr(public, "get_active_categories", lambda: [])
    monkeypatch.setattr(public, "get_published_lessons", lambda: [])

    resp = public.sitemap()

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "public, max-age=3600"
    assert resp.media_type.startswith("application/xml")
    assert b"/prompt/p1" in resp.body


def test_sitemap_route_reports_failure(monkeypatch):
    def boom():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(public, "get_published_prompts", boom)

    resp = public.sitemap()
    assert resp.status_code == 500


def test_health_reports_database_errors(monkeypatch):
    monkeypatch.setattr(public, "ping", lambda: None)
    assert public.health() == {"status": "ok"}

    def down():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(public, "ping", down)
    assert public.health()["status"] == "error"


def test_legal_pages_render_without_database():
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient

    import app.api as api_module

    client = TestClient(api_module.app)
    for path in ("/terms", "/privacy", "/payment-terms"):
        resp = client.get(path)
        assert resp.status_code == 200
        assert "<footer" in resp.text or "/payment-terms" in resp.text
