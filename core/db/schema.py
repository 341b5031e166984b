"""
Schema and migration helpers for Postgres.
"""
from __future__ import annotations

import logging
import os

from core.db.base import get_conn, utcnow_iso
from core.db.users import create_user, get_user_by_email, hash_password

log = logging.getLogger("db")

# Plans offered out of the box. Admins can add/disable plans later from /admin/plans.
DEFAULT_PLANS = [
    {"name": "Pro", "slug": "pro-monthly", "price": "99000", "subscription_type": "monthly", "duration_days": 30, "sort_order": 1},
    {"name": "Pro Yearly", "slug": "pro-yearly", "price": "899000", "subscription_type": "yearly", "duration_days": 365, "sort_order": 2},
    {"name": "Lifetime", "slug": "lifetime", "price": "499000", "subscription_type": "lifetime", "duration_days": None, "sort_order": 3},
    {"name": "VIP Agency", "slug": "vip", "price": "1499000", "subscription_type": "vip", "duration_days": 30, "sort_order": 4},
]


def init_db() -> None:
    """Create all marketplace tables if they don't exist."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users(
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'user',
            active INTEGER NOT NULL DEFAULT 1,
            full_name TEXT,
            phone TEXT,
            subscription_type TEXT NOT NULL DEFAULT 'free',
            subscription_expires_at TEXT,
            has_agency_access BOOLEAN NOT NULL DEFAULT FALSE,
            agency_access_expires_at TEXT,
            referral_code TEXT UNIQUE,
            referred_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
            referral_earnings NUMERIC(12,2) NOT NULL DEFAULT 0,
            created_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions(
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            last_seen_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS pricing_plans(
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            price NUMERIC(12,2) NOT NULL,
            subscription_type TEXT NOT NULL,
            duration_days INTEGER,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS categories(
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS prompts(
            id SERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
            is_published BOOLEAN NOT NULL DEFAULT FALSE,
            is_premium BOOLEAN NOT NULL DEFAULT FALSE,
            is_agency_only BOOLEAN NOT NULL DEFAULT FALSE,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS lessons(
            id SERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            is_published BOOLEAN NOT NULL DEFAULT FALSE,
            video_file_url TEXT,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS courses(
            id SERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            price NUMERIC(12,2) NOT NULL DEFAULT 0,
            discount_price NUMERIC(12,2),
            is_published BOOLEAN NOT NULL DEFAULT FALSE,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS payments(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            plan_id INTEGER REFERENCES pricing_plans(id),
            course_id INTEGER REFERENCES courses(id),
            amount NUMERIC(12,2) NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            receipt_url TEXT,
            payment_method TEXT,
            admin_notes TEXT,
            approved_at TEXT,
            approved_by INTEGER REFERENCES users(id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS user_courses(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            course_id INTEGER NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
            payment_id INTEGER REFERENCES payments(id) ON DELETE SET NULL,
            purchased_at TEXT NOT NULL,
            UNIQUE(user_id, course_id)
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS referral_transactions(
            id SERIAL PRIMARY KEY,
            referrer_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referred_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            payment_id INTEGER NOT NULL UNIQUE REFERENCES payments(id) ON DELETE CASCADE,
            amount NUMERIC(12,2) NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS referral_withdrawals(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount NUMERIC(12,2) NOT NULL,
            type TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            card_number TEXT,
            card_holder TEXT,
            plan_id INTEGER REFERENCES pricing_plans(id),
            admin_notes TEXT,
            approved_at TEXT,
            approved_by INTEGER REFERENCES users(id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS subscription_reminders(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            reminder_type TEXT NOT NULL,
            subscription_type TEXT NOT NULL,
            expires_at TEXT,
            sent_at TEXT NOT NULL,
            UNIQUE(user_id, reminder_type, expires_at)
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS audit_log(
            id SERIAL PRIMARY KEY,
            actor_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            action TEXT NOT NULL,
            table_name TEXT,
            record_id INTEGER,
            details TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    conn.commit()
    conn.close()

    seed_default_plans()
    ensure_admin_from_env()


def seed_default_plans() -> None:
    """Insert DEFAULT_PLANS into pricing_plans (idempotent)."""
    conn = get_conn()
    cur = conn.cursor()
    now = utcnow_iso()

    for plan in DEFAULT_PLANS:
        cur.execute(
            """
            INSERT INTO pricing_plans (name, slug, price, subscription_type, duration_days, is_active, sort_order, created_at)
            VALUES (?, ?, ?, ?, ?, TRUE, ?, ?)
            ON CONFLICT (slug) DO NOTHING
            """,
            (
                plan["name"],
                plan["slug"],
                plan["price"],
                plan["subscription_type"],
                plan["duration_days"],
                plan["sort_order"],
                now,
            ),
        )

    conn.commit()
    conn.close()


def ensure_admin_from_env() -> None:
    """
    Optionally seed/update an admin account from environment variables.
    Set ADMIN_EMAIL and ADMIN_PASSWORD before startup to use.
    """
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")

    if not admin_email or not admin_password:
        return

    existing = get_user_by_email(admin_email)
    if existing:
        conn = get_conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE users SET role='admin', password_hash=?, active=1 WHERE email=?",
            (hash_password(admin_password), admin_email.strip().lower()),
        )
        conn.commit()
        conn.close()
        return

    create_user(admin_email, admin_password, role="admin", full_name="Administrator")
    log.info("Seeded admin account", extra={"email": admin_email})


__all__ = [
    "DEFAULT_PLANS",
    "init_db",
    "seed_default_plans",
    "ensure_admin_from_env",
]
