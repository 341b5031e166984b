from contextlib import contextmanager
from decimal import Decimal

import pytest

import core.billing.approval as approval
import core.billing.referrals as referrals
from core.errors import ValidationFailed


# -------- Payment submission --------


def test_submit_payment_requires_exactly_one_item():
    with pytest.raises(ValidationFailed):
        approval.submit_payment(user_id=1)
    with pytest.raises(ValidationFailed):
        approval.submit_payment(user_id=1, plan_id=1, course_id=2)


def test_submit_payment_rejects_inactive_plan(monkeypatch):
    monkeypatch.setattr(approval, "get_plan", lambda plan_id: {"id": plan_id, "is_active": False, "price": 1})
    with pytest.raises(ValidationFailed):
        approval.submit_payment(user_id=1, plan_id=5)


def test_submit_payment_prices_course_with_discount(monkeypatch):
    inserted = {}
    monkeypatch.setattr(
        approval,
        "get_course",
        lambda course_id: {"id": course_id, "is_published": True, "price": Decimal("300000"), "discount_price": Decimal("250000")},
    )
    monkeypatch.setattr(approval, "insert_payment", lambda **kw: inserted.update(kw) or 42)

    payment_id = approval.submit_payment(user_id=7, course_id=3, receipt_url="7/abc.png", payment_method="card_transfer")

    assert payment_id == 42
    assert inserted["amount"] == Decimal("250000")
    assert inserted["course_id"] == 3
    assert inserted["plan_id"] is None


# -------- Payment result email --------


def _payment_row(**overrides):
    row = {
        "id": 9,
        "email": "buyer@example.com",
        "full_name": "Buyer",
        "plan_name": "Pro Monthly",
        "course_title": None,
        "amount": Decimal("99000"),
    }
    row.update(overrides)
    return row


@pytest.fixture
def approval_store(monkeypatch):
    """Approve payments against in-memory rows instead of Postgres."""
    credited = []

    @contextmanager
    def fake_transaction():
        yield object()

    payment = {"id": 12, "user_id": 8, "status": "pending", "amount": Decimal("250000"), "plan_id": None, "course_id": 3}
    monkeypatch.setattr(approval, "transaction", fake_transaction)
    monkeypatch.setattr(approval, "lock_payment", lambda cur, payment_id: dict(payment, id=payment_id))
    monkeypatch.setattr(approval, "set_payment_status", lambda cur, payment_id, **kw: None)
    monkeypatch.setattr(approval, "lock_user_subscription", lambda cur, user_id: {"id": user_id, "referred_by": 4})
    monkeypatch.setattr(approval, "insert_referral_transaction", lambda cur, **kw: True)
    monkeypatch.setattr(approval, "add_referral_earnings", lambda cur, user_id, amount: credited.append((user_id, amount)))
    monkeypatch.setattr(approval, "write_audit", lambda cur, **kw: None)
    return payment, credited


def test_commission_paid_when_course_already_owned(approval_store, monkeypatch):
    payment, credited = approval_store
    monkeypatch.setattr(approval, "grant_course_access", lambda cur, **kw: False)

    result = approval.approve_payment(12, admin_id=1, notify=False)

    assert result.access == "course_already_owned"
    assert result.commission == Decimal("25000.00")
    assert credited == [(4, Decimal("25000.00"))]


def test_commission_paid_for_payment_without_plan_or_course(approval_store):
    payment, credited = approval_store
    payment["course_id"] = None

    result = approval.approve_payment(12, admin_id=1, notify=False)

    assert result.access is None
    assert credited == [(4, Decimal("25000.00"))]


def test_commission_not_paid_twice_for_one_payment(approval_store, monkeypatch):
    payment, credited = approval_store
    monkeypatch.setattr(approval, "grant_course_access", lambda cur, **kw: True)
    monkeypatch.setattr(approval, "insert_referral_transaction", lambda cur, **kw: False)

    result = approval.approve_payment(12, admin_id=1, notify=False)

    assert result.commission is None
    assert credited == []


def test_notify_payment_result_sends_email(monkeypatch):
    sent = []
    monkeypatch.setattr(approval, "get_payment", lambda payment_id: _payment_row())
    monkeypatch.setattr(approval, "send_html_email", lambda to, subject, html, text=None: sent.append((to, subject)))

    assert approval.notify_payment_result(9, approved=True) is True
    assert len(sent) == 1
    assert sent[0][0] == "buyer@example.com"
    assert "approved" in sent[0][1]


def test_notify_payment_result_reports_smtp_failure(monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("Email credentials not configured.")

    monkeypatch.setattr(approval, "get_payment", lambda payment_id: _payment_row())
    monkeypatch.setattr(approval, "send_html_email", boom)

    assert approval.notify_payment_result(9, approved=False) is False


def test_notify_payment_result_without_recipient(monkeypatch):
    monkeypatch.setattr(approval, "get_payment", lambda payment_id: None)
    assert approval.notify_payment_result(9, approved=True) is False


# -------- Withdrawals --------


@pytest.mark.parametrize("raw", ["", "abc", "-5", "0", "NaN"])
def test_parse_amount_rejects_bad_values(raw):
    with pytest.raises(ValidationFailed):
        referrals.parse_amount(raw)


def test_parse_amount_accepts_separators():
    assert referrals.parse_amount("75 000") == Decimal("75000.00")
    assert referrals.parse_amount("75,000.5") == Decimal("75000.50")


@pytest.fixture
def referrer(monkeypatch):
    user = {"id": 5, "referral_earnings": Decimal("120000"), "referral_code": "ABCD1234"}
    inserted = []
    monkeypatch.setattr(referrals, "get_user_by_id", lambda user_id: user)
    monkeypatch.setattr(referrals, "pending_withdrawal_total", lambda user_id: Decimal("30000"))
    monkeypatch.setattr(referrals, "insert_withdrawal", lambda **kw: inserted.append(kw) or 77)
    return inserted


def test_cash_withdrawal_validates_card(referrer):
    with pytest.raises(ValidationFailed, match="16 digits"):
        referrals.request_withdrawal(user_id=5, amount="60000", type="cash", card_number="1234", card_holder="A B")
    with pytest.raises(ValidationFailed, match="holder"):
        referrals.request_withdrawal(
            user_id=5, amount="60000", type="cash", card_number="8600 1234 5678 9012", card_holder=" "
        )
    assert referrer == []


def test_cash_withdrawal_enforces_minimum(referrer):
    with pytest.raises(ValidationFailed, match="Minimum"):
        referrals.request_withdrawal(
            user_id=5, amount="10000", type="cash", card_number="8600123456789012", card_holder="A B"
        )


def test_cash_withdrawal_cannot_exceed_available_balance(referrer):
    # 120 000 earned minus 30 000 already pending
    with pytest.raises(ValidationFailed, match="Not enough"):
        referrals.request_withdrawal(
            user_id=5, amount="95000", type="cash", card_number="8600123456789012", card_holder="A B"
        )


def test_cash_withdrawal_normalises_card_number(referrer):
    withdrawal_id = referrals.request_withdrawal(
        user_id=5, amount="90000", type="cash", card_number="8600-1234-5678-9012", card_holder=" Ali Valiyev "
    )
    assert withdrawal_id == 77
    assert referrer[0]["card_number"] == "8600123456789012"
    assert referrer[0]["card_holder"] == "Ali Valiyev"
    assert referrer[0]["amount"] == Decimal("90000.00")


def test_subscription_withdrawal_uses_plan_price(referrer, monkeypatch):
    monkeypatch.setattr(
        referrals, "get_plan", lambda plan_id: {"id": plan_id, "is_active": True, "price": Decimal("89000")}
    )
    referrals.request_withdrawal(user_id=5, amount="", type="subscription", plan_id=2)

    assert referrer[0]["amount"] == Decimal("89000")
    assert referrer[0]["plan_id"] == 2
    assert referrer[0]["card_number"] is None


def test_subscription_withdrawal_rejects_a_different_amount(referrer, monkeypatch):
    monkeypatch.setattr(
        referrals, "get_plan", lambda plan_id: {"id": plan_id, "is_active": True, "price": Decimal("89000")}
    )
    with pytest.raises(ValidationFailed, match="plan price"):
        referrals.request_withdrawal(user_id=5, amount="1", type="subscription", plan_id=2)
    assert referrer == []

    # Repeating the plan price is accepted
    referrals.request_withdrawal(user_id=5, amount="89 000", type="subscription", plan_id=2)
    assert referrer[0]["amount"] == Decimal("89000")


def test_unknown_withdrawal_type(referrer):
    with pytest.raises(ValidationFailed):
        referrals.request_withdrawal(user_id=5, amount="60000", type="crypto")


def test_referral_link_uses_public_base_url(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://mpbs.example/")
    assert referrals.referral_link("ABCD1234") == "https://mpbs.example/register?ref=ABCD1234"
