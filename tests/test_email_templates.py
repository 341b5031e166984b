from decimal import Decimal

import pytest

from core.notifications import mailer, templates


def test_format_amount_uses_space_thousands_separator():
    assert templates.format_amount(Decimal("99000")) == f"99 000 {templates.CURRENCY}"
    assert templates.format_amount(Decimal("1499000.50")) == f"1 499 000.50 {templates.CURRENCY}"
    assert templates.format_amount(None) == f"0 {templates.CURRENCY}"


def test_display_name_falls_back_to_email_local_part():
    assert templates.display_name("  Aziza Karimova ", "a@example.com") == "Aziza Karimova"
    assert templates.display_name(None, "bekzod@example.com") == "bekzod"


def test_payment_approved_email_escapes_user_values(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://mpbs.example/")
    subject, html_body, text = templates.payment_result_email(
        approved=True,
        user_name="<script>alert(1)</script>",
        item_name="Pro <Monthly>",
        amount=Decimal("99000"),
    )
    assert subject.startswith("Your payment was approved")
    assert "<script>" not in html_body
    assert "&lt;script&gt;" in html_body
    assert "Pro &lt;Monthly&gt;" in html_body
    assert "https://mpbs.example/dashboard" in html_body
    assert "99 000" in text


def test_payment_rejected_email_links_back_to_payment_page(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://mpbs.example")
    subject, html_body, _ = templates.payment_result_email(
        approved=False, user_name="Ali", item_name="Course", amount=1000
    )
    assert subject.startswith("Your payment was rejected")
    assert "https://mpbs.example/payment" in html_body


@pytest.mark.parametrize(
    "reminder_type, expected",
    [
        ("7_days", "ends in 7 days"),
        ("3_days", "ends in 3 days"),
        ("1_day", "ends tomorrow"),
        ("expired", "has ended"),
    ],
)
def test_reminder_subjects(reminder_type, expected):
    subject, html_body, text = templates.reminder_email(
        reminder_type=reminder_type,
        user_name="Ali",
        subscription_type="vip",
        expires_at="2025-03-08T10:00:00",
    )
    assert expected in subject
    assert "VIP" in html_body
    assert "<strong>" not in text


def test_reminder_email_shows_formatted_expiry_date():
    _, html_body, _ = templates.reminder_email(
        reminder_type="7_days", user_name="Ali", subscription_type="monthly", expires_at="2025-03-08T10:00:00"
    )
    assert "08 March 2025" in html_body


def test_send_html_email_requires_credentials(monkeypatch):
    monkeypatch.delenv("EMAIL_USER", raising=False)
    monkeypatch.delenv("EMAIL_PASSWORD", raising=False)
    with pytest.raises(RuntimeError):
        mailer.send_html_email("user@example.com", "Subject", "<p>Hi</p>")


def test_send_html_email_uses_starttls_and_gmail_sender(monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "bot@gmail.com")
    monkeypatch.setenv("EMAIL_PASSWORD", "secret")
    monkeypatch.setenv("EMAIL_FROM", "noreply@mpbs.uz")
    monkeypatch.setenv("SMTP_SERVER", "smtp.gmail.com")
    calls = []

    class FakeSMTP:
        def __init__(self, host, port):
            calls.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            calls.append(("starttls",))

        def login(self, user, password):
            calls.append(("login", user))

        def sendmail(self, sender, recipients, body):
            calls.append(("sendmail", sender, recipients, body))

    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    mailer.send_html_email("user@example.com", "Hello", "<p>Hi</p>", "Hi")

    assert ("starttls",) in calls
    sendmail = [c for c in calls if c[0] == "sendmail"][0]
    assert sendmail[1] == "bot@gmail.com"
    assert sendmail[2] == ["user@example.com"]
    assert "multipart/alternative" in sendmail[3]
