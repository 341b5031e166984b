import sys

import pytest

from scripts import preview_reminders


def test_preview_lists_due_reminders(monkeypatch, capsys):
    due = [
        {"user_id": 4, "email": "a@example.com", "subscription_type": "monthly",
         "expires_at": "2025-03-03T12:00:00", "reminder_type": "3_days"},
    ]
    monkeypatch.setattr(preview_reminders, "load_dotenv", lambda override=True: None)
    monkeypatch.setattr(preview_reminders, "get_subscription_reminders", lambda: due)
    monkeypatch.setattr(preview_reminders, "send_text_email", lambda *a: pytest.fail("dry run sent mail"))
    monkeypatch.setattr(sys, "argv", ["preview_reminders"])

    preview_reminders.main()

    out = capsys.readouterr().out
    assert "1 reminder(s) due" in out
    assert "email=a@example.com type=3_days" in out


def test_preview_send_test_mail(monkeypatch, capsys):
    sent = []
    monkeypatch.setattr(preview_reminders, "load_dotenv", lambda override=True: None)
    monkeypatch.setattr(preview_reminders, "send_text_email", lambda to, subject, body: sent.append(to))
    monkeypatch.setattr(sys, "argv", ["preview_reminders", "--send-test", "ops@example.com"])

    preview_reminders.main()

    assert sent == ["ops@example.com"]
    assert "Test email sent" in capsys.readouterr().out
