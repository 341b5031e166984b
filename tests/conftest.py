import os

import pytest

from app import security

_TABLES = [
    "audit_log",
    "subscription_reminders",
    "referral_withdrawals",
    "referral_transactions",
    "user_courses",
    "payments",
    "courses",
    "lessons",
    "prompts",
    "categories",
    "pricing_plans",
    "sessions",
    "users",
]


def _truncate_all():
    from core.db.base import get_conn

    conn = get_conn()
    cur = conn.cursor()
    cur.execute("TRUNCATE " + ", ".join(_TABLES) + " RESTART IDENTITY CASCADE")
    conn.commit()
    conn.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    security.reset_rate_limits()
    yield
    security.reset_rate_limits()


@pytest.fixture
def db():
    """Clean Postgres schema with the default plans seeded. Skips without DATABASE_URL."""
    if not os.getenv("DATABASE_URL"):
        pytest.skip("DATABASE_URL must be set for Postgres-backed tests.")

    from core.db.schema import init_db, seed_default_plans

    init_db()
    _truncate_all()
    seed_default_plans()
    yield
    _truncate_all()


@pytest.fixture
def plan_by_slug(db):
    from core.database import list_plans

    def _get(slug):
        return next(p for p in list_plans(active_only=False) if p["slug"] == slug)

    return _get


@pytest.fixture
def make_course(db):
    from core.db.base import get_conn, utcnow_iso

    def _make(title="Prompt Engineering 101", price=200000, discount_price=None):
        conn = get_conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO courses (title, slug, price, discount_price, is_published, updated_at)
            VALUES (?, ?, ?, ?, TRUE, ?)
            RETURNING id
            """,
            (title, title.lower().replace(" ", "-"), price, discount_price, utcnow_iso()),
        )
        course_id = int(cur.fetchone()["id"])
        conn.commit()
        conn.close()
        return course_id

    return _make


@pytest.fixture
def no_email(monkeypatch):
    """Capture outgoing mail instead of talking to SMTP."""
    import core.billing.approval as approval
    import worker.lifecycle as lifecycle

    sent = []

    def _capture(to, subject, html, text=None):
        sent.append({"to": to, "subject": subject, "html": html, "text": text})

    monkeypatch.setattr(approval, "send_html_email", _capture)
    monkeypatch.setattr(lifecycle, "send_html_email", _capture)
    return sent
