import asyncio
import csv
import io
from datetime import datetime, timedelta

import pytest

import worker.lifecycle as lifecycle
import worker.main as worker_main

NOW = datetime(2025, 3, 1, 12, 0, 0)


def _iso(dt):
    return dt.isoformat(timespec="seconds")


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(days=10), None),
        (timedelta(days=7), "7_days"),
        (timedelta(days=5), "7_days"),
        (timedelta(days=3, hours=1), "7_days"),
        (timedelta(days=3), "3_days"),
        (timedelta(days=1, hours=1), "3_days"),
        (timedelta(days=1), "1_day"),
        (timedelta(hours=2), "1_day"),
        (timedelta(0), "expired"),
        (-timedelta(days=6), "expired"),
        (-timedelta(days=8), None),
    ],
)
def test_classify_reminder_windows(delta, expected):
    assert lifecycle.classify_reminder(_iso(NOW + delta), NOW) == expected


def test_classify_reminder_without_expiry():
    assert lifecycle.classify_reminder(None, NOW) is None


def _candidate(user_id, expires_at, sub_type="monthly"):
    return {
        "user_id": user_id,
        "email": f"user{user_id}@example.com",
        "full_name": None,
        "subscription_type": sub_type,
        "subscription_expires_at": expires_at,
    }


def test_get_subscription_reminders_skips_already_sent(monkeypatch):
    soon = _iso(NOW + timedelta(days=2))
    later = _iso(NOW + timedelta(days=30))
    candidates = [_candidate(1, soon), _candidate(2, soon), _candidate(3, later)]
    monkeypatch.setattr(lifecycle, "get_expiring_subscriptions", lambda: candidates)
    monkeypatch.setattr(lifecycle, "get_sent_reminder_keys", lambda ids: {(2, "3_days", soon)})

    due = lifecycle.get_subscription_reminders(NOW)

    assert [d["user_id"] for d in due] == [1]
    assert due[0]["reminder_type"] == "3_days"
    assert due[0]["expires_at"] == soon


def test_renewed_subscription_gets_fresh_reminders(monkeypatch):
    old_expiry = _iso(NOW + timedelta(days=2))
    new_expiry = _iso(NOW + timedelta(days=2, hours=3))
    monkeypatch.setattr(lifecycle, "get_expiring_subscriptions", lambda: [_candidate(1, new_expiry)])
    monkeypatch.setattr(lifecycle, "get_sent_reminder_keys", lambda ids: {(1, "3_days", old_expiry)})

    due = lifecycle.get_subscription_reminders(NOW)
    assert len(due) == 1


def test_run_reminders_counts_sent_and_failed(monkeypatch):
    due = [
        {"user_id": 1, "email": "ok@example.com", "full_name": "Ok", "subscription_type": "vip",
         "expires_at": _iso(NOW + timedelta(days=1)), "reminder_type": "1_day"},
        {"user_id": 2, "email": "bad@example.com", "full_name": None, "subscription_type": "monthly",
         "expires_at": _iso(NOW + timedelta(days=6)), "reminder_type": "7_days"},
    ]
    sent = []
    logged = []

    def fake_send(to, subject, html, text=None):
        if to.startswith("bad"):
            raise RuntimeError("SMTP down")
        sent.append((to, subject))

    monkeypatch.setattr(lifecycle, "get_subscription_reminders", lambda now=None: due)
    monkeypatch.setattr(lifecycle, "send_html_email", fake_send)
    monkeypatch.setattr(lifecycle, "_log_sent_reminder", lambda r: logged.append(r["user_id"]))

    result = lifecycle.run_reminders(NOW)

    assert result == {"sent": 1, "errors": 1, "total": 2}
    assert sent[0][0] == "ok@example.com"
    assert "tomorrow" in sent[0][1]
    # Failed sends stay unlogged so the next run retries them
    assert logged == [1]


def test_run_reminders_with_nothing_due(monkeypatch):
    monkeypatch.setattr(lifecycle, "get_subscription_reminders", lambda now=None: [])
    assert lifecycle.run_reminders(NOW) == {"sent": 0, "errors": 0, "total": 0}


def test_run_cycle_sends_reminders_before_expiring(monkeypatch):
    order = []
    monkeypatch.setattr(lifecycle, "send_due_reminders", lambda now=None: (order.append("reminders") or {"sent": 0}, []))
    monkeypatch.setattr(
        lifecycle,
        "expire_subscriptions",
        lambda now=None, hold_user_ids=(): order.append("expiry") or {"expired_subscriptions": 0},
    )
    monkeypatch.setattr(lifecycle, "purge_expired_sessions", lambda now_iso: order.append("sessions") or 2)

    result = lifecycle.run_cycle(NOW)

    assert order == ["reminders", "expiry", "sessions"]
    assert result["sessions_purged"] == 2


def test_failed_expired_reminder_holds_the_downgrade(monkeypatch):
    due = [
        {"user_id": 1, "email": "a@example.com", "full_name": None, "subscription_type": "monthly",
         "expires_at": _iso(NOW - timedelta(hours=1)), "reminder_type": "expired"},
        {"user_id": 2, "email": "b@example.com", "full_name": None, "subscription_type": "monthly",
         "expires_at": _iso(NOW + timedelta(days=2)), "reminder_type": "3_days"},
    ]

    def smtp_down(*args, **kwargs):
        raise RuntimeError("SMTP down")

    excluded = []
    monkeypatch.setattr(lifecycle, "get_subscription_reminders", lambda now=None: due)
    monkeypatch.setattr(lifecycle, "send_html_email", smtp_down)
    monkeypatch.setattr(
        lifecycle, "expire_due_subscriptions", lambda now_iso, exclude_user_ids=(): excluded.append(list(exclude_user_ids)) or 0
    )
    monkeypatch.setattr(lifecycle, "revoke_expired_agency_access", lambda now_iso: 0)
    monkeypatch.setattr(lifecycle, "purge_expired_sessions", lambda now_iso: 0)

    result = lifecycle.run_cycle(NOW)

    assert result["reminders"] == {"sent": 0, "errors": 2, "total": 2}
    # Only the failed "expired" reminder keeps its user on the paid type for the retry
    assert excluded == [[1]]


def test_expire_subscriptions_passes_cutoff(monkeypatch):
    seen = []
    monkeypatch.setattr(lifecycle, "expire_due_subscriptions", lambda now_iso, exclude_user_ids=(): seen.append(now_iso) or 3)
    monkeypatch.setattr(lifecycle, "revoke_expired_agency_access", lambda now_iso: 1)

    result = lifecycle.expire_subscriptions(NOW)

    assert result == {"expired_subscriptions": 3, "revoked_agency_access": 1}
    assert seen == ["2025-03-01T12:00:00"]


def test_export_reminders_csv(monkeypatch):
    rows = [
        {"email": "a@example.com", "full_name": "A, B", "subscription_type": "vip", "reminder_type": "3_days",
         "expires_at": "2025-03-04T10:00:00", "sent_at": "2025-03-01T09:00:00"},
    ]
    captured = {}

    def fake_list(**kwargs):
        captured.update(kwargs)
        return rows, 1

    monkeypatch.setattr(lifecycle, "list_reminders", fake_list)

    content = lifecycle.export_reminders_csv(reminder_type="3_days")
    parsed = list(csv.reader(io.StringIO(content)))

    assert parsed[0][0] == "Email"
    assert parsed[1] == ["a@example.com", "A, B", "vip", "3_days", "2025-03-04", "2025-03-01"]
    assert captured["reminder_type"] == "3_days"
    assert captured["page"] == 0


def test_days_until_expiry():
    assert lifecycle.days_until_expiry("2025-03-08T09:00:00", "2025-03-01T09:00:00") == 7
    assert lifecycle.days_until_expiry(None, "2025-03-01T09:00:00") is None


def test_worker_loop_survives_failed_cycle(monkeypatch):
    calls = {"count": 0}

    def flaky_cycle():
        calls["count"] += 1
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(worker_main, "init_db", lambda: None)
    monkeypatch.setattr(worker_main, "run_cycle", flaky_cycle)
    monkeypatch.setattr(worker_main, "RUN_ONCE", True)

    asyncio.run(worker_main.main())

    assert calls["count"] == 1


def test_worker_run_once_returns_cycle_result(monkeypatch):
    expected = {"reminders": {"sent": 2}, "expiry": {"expired_subscriptions": 1}}
    monkeypatch.setattr(worker_main, "run_cycle", lambda: expected)

    assert asyncio.run(worker_main.run_once()) == expected
