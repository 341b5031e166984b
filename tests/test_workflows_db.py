"""
End-to-end billing and lifecycle workflows against a real Postgres database.
Skipped unless DATABASE_URL points at a disposable test database.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from core.billing.approval import approve_payment, reject_payment, submit_payment
from core.billing.referrals import approve_withdrawal, available_balance, reject_withdrawal, request_withdrawal
from core.database import (
    create_user,
    get_conn,
    get_payment,
    get_user_by_id,
    list_audit_entries,
    list_reminders,
    list_user_courses,
    user_has_any_course,
)
from core.errors import InvalidTransition, PaymentNotFound
from worker.lifecycle import expire_subscriptions, run_cycle, run_reminders

NOW = datetime(2025, 3, 1, 12, 0, 0)


def _set_user(user_id, **fields):
    conn = get_conn()
    cur = conn.cursor()
    assignments = ", ".join(f"{k} = ?" for k in fields)
    cur.execute(f"UPDATE users SET {assignments} WHERE id = ?", (*fields.values(), user_id))
    conn.commit()
    conn.close()


@pytest.fixture
def referrer(db):
    return create_user("referrer@example.com", "Passw0rd1", full_name="Referrer")


@pytest.fixture
def buyer(db, referrer):
    return create_user("buyer@example.com", "Passw0rd1", full_name="Buyer", referred_by=referrer)


@pytest.fixture
def admin(db):
    return create_user("admin@example.com", "Passw0rd1", role="admin")


# -------- Payments --------


def test_approving_plan_payment_grants_subscription_and_commission(buyer, referrer, admin, plan_by_slug, no_email):
    plan = plan_by_slug("pro-monthly")
    payment_id = submit_payment(user_id=buyer, plan_id=plan["id"], receipt_url=f"{buyer}/r.png")

    result = approve_payment(payment_id, admin_id=admin, now=NOW)

    assert result.access == "subscription"
    assert result.expires_at == "2025-03-31T12:00:00"
    assert result.commission == Decimal("9900.00")
    assert result.email_sent is True

    user = get_user_by_id(buyer)
    assert user["subscription_type"] == "monthly"
    assert user["subscription_expires_at"] == "2025-03-31T12:00:00"
    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("9900.00")

    payment = get_payment(payment_id)
    assert payment["status"] == "approved"
    assert [e["action"] for e in list_audit_entries(action="payment_approved")] == ["payment_approved"]
    assert no_email[0]["to"] == "buyer@example.com"


def test_payment_cannot_be_approved_twice(buyer, referrer, admin, plan_by_slug, no_email):
    payment_id = submit_payment(user_id=buyer, plan_id=plan_by_slug("pro-monthly")["id"])
    approve_payment(payment_id, admin_id=admin, now=NOW)

    with pytest.raises(InvalidTransition):
        approve_payment(payment_id, admin_id=admin, now=NOW)
    with pytest.raises(InvalidTransition):
        reject_payment(payment_id, admin_id=admin)

    # Commission was paid exactly once
    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("9900.00")
    assert get_user_by_id(buyer)["subscription_expires_at"] == "2025-03-31T12:00:00"


def test_unknown_payment(admin, no_email):
    with pytest.raises(PaymentNotFound):
        approve_payment(999, admin_id=admin)


def test_rejected_payment_grants_nothing(buyer, referrer, admin, plan_by_slug, no_email):
    payment_id = submit_payment(user_id=buyer, plan_id=plan_by_slug("pro-monthly")["id"])

    result = reject_payment(payment_id, admin_id=admin, notes="Receipt unreadable")

    assert result.status == "rejected"
    assert get_payment(payment_id)["status"] == "rejected"
    assert get_user_by_id(buyer)["subscription_type"] == "free"
    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("0")
    assert "rejected" in no_email[0]["subject"]


def test_email_failure_does_not_undo_approval(buyer, admin, plan_by_slug, monkeypatch):
    import core.billing.approval as approval

    def smtp_down(*args, **kwargs):
        raise RuntimeError("SMTP down")

    monkeypatch.setattr(approval, "send_html_email", smtp_down)
    payment_id = submit_payment(user_id=buyer, plan_id=plan_by_slug("lifetime")["id"])

    result = approve_payment(payment_id, admin_id=admin, now=NOW)

    assert result.email_sent is False
    assert get_user_by_id(buyer)["subscription_type"] == "lifetime"


def test_course_purchase_enrols_once(buyer, referrer, admin, make_course, no_email):
    course_id = make_course(price=300000, discount_price=250000)

    first = submit_payment(user_id=buyer, course_id=course_id)
    second = submit_payment(user_id=buyer, course_id=course_id)
    assert get_payment(first)["amount"] == Decimal("250000")

    assert approve_payment(first, admin_id=admin, now=NOW).access == "course"
    repeat = approve_payment(second, admin_id=admin, now=NOW)

    assert repeat.access == "course_already_owned"
    # Every approved payment pays its own commission
    assert repeat.commission == Decimal("25000.00")
    assert [c["course_id"] for c in list_user_courses(buyer)] == [course_id]
    assert user_has_any_course(buyer) is True
    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("50000.00")


def test_vip_plan_grants_agency_access(buyer, admin, plan_by_slug, no_email):
    payment_id = submit_payment(user_id=buyer, plan_id=plan_by_slug("vip")["id"])
    approve_payment(payment_id, admin_id=admin, now=NOW)

    user = get_user_by_id(buyer)
    assert user["subscription_type"] == "vip"
    assert user["has_agency_access"] is True
    assert user["agency_access_expires_at"] == "2025-03-31T12:00:00"


# -------- Withdrawals --------


def test_cash_withdrawal_lifecycle(referrer, admin):
    _set_user(referrer, referral_earnings=Decimal("120000"))

    withdrawal_id = request_withdrawal(
        user_id=referrer, amount="70000", type="cash", card_number="8600123456789012", card_holder="Referrer"
    )
    # Pending requests reserve their amount
    assert available_balance(get_user_by_id(referrer)) == Decimal("50000")

    approve_withdrawal(withdrawal_id, admin_id=admin)

    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("50000")
    with pytest.raises(InvalidTransition):
        reject_withdrawal(withdrawal_id, admin_id=admin)


def test_rejected_withdrawal_releases_balance(referrer, admin):
    _set_user(referrer, referral_earnings=Decimal("60000"))
    withdrawal_id = request_withdrawal(
        user_id=referrer, amount="60000", type="cash", card_number="8600123456789012", card_holder="Referrer"
    )
    assert available_balance(get_user_by_id(referrer)) == Decimal("0")

    reject_withdrawal(withdrawal_id, admin_id=admin, notes="Card blocked")

    assert available_balance(get_user_by_id(referrer)) == Decimal("60000")
    assert Decimal(get_user_by_id(referrer)["referral_earnings"]) == Decimal("60000")


def test_subscription_withdrawal_grants_plan(referrer, admin, plan_by_slug):
    plan = plan_by_slug("pro-monthly")
    _set_user(referrer, referral_earnings=Decimal("100000"))

    withdrawal_id = request_withdrawal(user_id=referrer, amount="", type="subscription", plan_id=plan["id"])
    outcome = approve_withdrawal(withdrawal_id, admin_id=admin, now=NOW)

    user = get_user_by_id(referrer)
    assert outcome["subscription_type"] == "monthly"
    assert user["subscription_type"] == "monthly"
    assert Decimal(user["referral_earnings"]) == Decimal("1000")


# -------- Lifecycle --------


def test_reminders_are_sent_once_per_expiry(buyer, no_email):
    expires = (NOW + timedelta(days=2)).isoformat(timespec="seconds")
    _set_user(buyer, subscription_type="monthly", subscription_expires_at=expires)

    assert run_reminders(NOW) == {"sent": 1, "errors": 0, "total": 1}
    assert run_reminders(NOW + timedelta(hours=1)) == {"sent": 0, "errors": 0, "total": 0}

    rows, total = list_reminders()
    assert total == 1
    assert rows[0]["reminder_type"] == "3_days"
    assert rows[0]["expires_at"] == expires
    assert len(no_email) == 1


def test_expiry_downgrades_but_keeps_timestamp(buyer, no_email):
    expired_at = (NOW - timedelta(hours=1)).isoformat(timespec="seconds")
    _set_user(
        buyer,
        subscription_type="vip",
        subscription_expires_at=expired_at,
        has_agency_access=True,
        agency_access_expires_at=expired_at,
    )

    result = run_cycle(NOW)

    assert result["reminders"]["sent"] == 1
    assert result["expiry"] == {"expired_subscriptions": 1, "revoked_agency_access": 1}
    user = get_user_by_id(buyer)
    assert user["subscription_type"] == "free"
    assert user["subscription_expires_at"] == expired_at
    assert user["has_agency_access"] is False
    # The "expired" reminder saw the paid type before the downgrade
    assert list_reminders(reminder_type="expired")[0][0]["subscription_type"] == "vip"


def test_lifetime_subscription_never_expires(buyer):
    _set_user(buyer, subscription_type="lifetime", subscription_expires_at=None)

    assert expire_subscriptions(NOW)["expired_subscriptions"] == 0
    assert get_user_by_id(buyer)["subscription_type"] == "lifetime"
