"""
Referral programme: withdrawal requests and their admin review.

Commissions themselves are credited by core.billing.approval when a referred
user's payment is approved.
"""
from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict

from core.billing.plans import resolve_plan_grant
from core.db.audit import write_audit
from core.db.base import transaction
from core.db.catalog import get_plan
from core.db.referrals import (
    WITHDRAWAL_TYPES,
    insert_withdrawal,
    list_referral_transactions,
    list_withdrawals_for_user,
    lock_withdrawal,
    pending_withdrawal_total,
    set_withdrawal_status,
)
from core.db.subscriptions import apply_subscription, deduct_referral_earnings, lock_user_subscription
from core.db.users import count_referred_users, get_user_by_id
from core.errors import InvalidTransition, ValidationFailed, WithdrawalNotFound
from core.notifications.templates import public_base_url

log = logging.getLogger("billing")

MIN_WITHDRAWAL_AMOUNT = Decimal(os.getenv("MIN_WITHDRAWAL_AMOUNT", "50000"))

_CARD_RE = re.compile(r"^\d{16}$")


def parse_amount(raw) -> Decimal:
    try:
        amount = Decimal(str(raw).replace(" ", "").replace(",", ""))
    except (InvalidOperation, ValueError):
        raise ValidationFailed("Enter a valid amount.") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationFailed("Amount must be positive.")
    return amount.quantize(Decimal("0.01"))


def referral_link(code: str) -> str:
    return f"{public_base_url()}/register?ref={code}"


def available_balance(user: Dict) -> Decimal:
    """Earnings not already promised to another pending withdrawal."""
    earnings = Decimal(user.get("referral_earnings") or 0)
    return max(Decimal("0"), earnings - pending_withdrawal_total(user["id"]))


def request_withdrawal(
    *,
    user_id: int,
    amount,
    type: str,
    card_number: str | None = None,
    card_holder: str | None = None,
    plan_id: int | None = None,
) -> int:
    if type not in WITHDRAWAL_TYPES:
        raise ValidationFailed("Unknown withdrawal type.")

    user = get_user_by_id(user_id)
    if not user:
        raise ValidationFailed("Unknown user.")

    if type == "subscription":
        plan = get_plan(plan_id) if plan_id else None
        if not plan or not plan.get("is_active"):
            raise ValidationFailed("Choose an available plan.")
        value = Decimal(plan["price"])
        if str(amount or "").strip() and parse_amount(amount) != value:
            raise ValidationFailed("A subscription withdrawal costs exactly the plan price; leave the amount empty.")
        card_number = card_holder = None
    else:
        value = parse_amount(amount)
        digits = re.sub(r"[\s-]", "", card_number or "")
        if not _CARD_RE.match(digits):
            raise ValidationFailed("Card number must be 16 digits.")
        if not (card_holder or "").strip():
            raise ValidationFailed("Card holder name is required.")
        if value < MIN_WITHDRAWAL_AMOUNT:
            raise ValidationFailed(f"Minimum withdrawal is {MIN_WITHDRAWAL_AMOUNT:,.0f}.")
        card_number, card_holder, plan_id = digits, card_holder.strip(), None

    balance = available_balance(user)
    if value > balance:
        raise ValidationFailed("Not enough referral earnings.")

    withdrawal_id = insert_withdrawal(
        user_id=user_id,
        amount=value,
        type=type,
        card_number=card_number,
        card_holder=card_holder,
        plan_id=plan_id,
    )
    log.info("Withdrawal requested", extra={"withdrawal_id": withdrawal_id, "user_id": user_id, "type": type})
    return withdrawal_id


def approve_withdrawal(
    withdrawal_id: int,
    admin_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Dict:
    now = now or datetime.utcnow()
    now_iso = now.isoformat(timespec="seconds")
    outcome: Dict = {"withdrawal_id": withdrawal_id, "status": "approved"}

    with transaction() as cur:
        withdrawal = lock_withdrawal(cur, withdrawal_id)
        if not withdrawal:
            raise WithdrawalNotFound(f"Withdrawal {withdrawal_id} not found")
        if withdrawal["status"] != "pending":
            raise InvalidTransition("withdrawal", withdrawal_id, withdrawal["status"], "approved")

        user = lock_user_subscription(cur, withdrawal["user_id"])
        amount = Decimal(withdrawal["amount"])
        if Decimal(user.get("referral_earnings") or 0) < amount:
            log.warning(
                "Withdrawal exceeds current earnings; balance floored at zero",
                extra={"withdrawal_id": withdrawal_id, "user_id": user["id"]},
            )

        if withdrawal["type"] == "subscription":
            plan = get_plan(withdrawal["plan_id"], cur=cur) if withdrawal.get("plan_id") else None
            if not plan:
                raise ValidationFailed("The requested plan no longer exists.")
            grant = resolve_plan_grant(plan, user, now)
            apply_subscription(
                cur,
                user["id"],
                subscription_type=grant.subscription_type,
                expires_at=grant.expires_at,
                grant_agency=grant.grant_agency,
                agency_expires_at=grant.agency_expires_at,
            )
            outcome["subscription_type"] = grant.subscription_type
            outcome["expires_at"] = grant.expires_at

        set_withdrawal_status(cur, withdrawal_id, status="approved", admin_id=admin_id, notes=notes, now=now_iso)
        deduct_referral_earnings(cur, user["id"], amount)
        write_audit(
            cur,
            actor_user_id=admin_id,
            action="referral_withdrawal_approved",
            table_name="referral_withdrawals",
            record_id=withdrawal_id,
            details={"user_id": user["id"], "amount": amount, "type": withdrawal["type"], "notes": notes},
        )

    log.info("Withdrawal approved", extra=outcome)
    return outcome


def reject_withdrawal(withdrawal_id: int, admin_id: int | None, notes: str | None = None) -> Dict:
    now_iso = datetime.utcnow().isoformat(timespec="seconds")
    with transaction() as cur:
        withdrawal = lock_withdrawal(cur, withdrawal_id)
        if not withdrawal:
            raise WithdrawalNotFound(f"Withdrawal {withdrawal_id} not found")
        if withdrawal["status"] != "pending":
            raise InvalidTransition("withdrawal", withdrawal_id, withdrawal["status"], "rejected")

        set_withdrawal_status(cur, withdrawal_id, status="rejected", admin_id=admin_id, notes=notes, now=now_iso)
        write_audit(
            cur,
            actor_user_id=admin_id,
            action="referral_withdrawal_rejected",
            table_name="referral_withdrawals",
            record_id=withdrawal_id,
            details={"user_id": withdrawal["user_id"], "amount": withdrawal["amount"], "notes": notes},
        )

    log.info("Withdrawal rejected", extra={"withdrawal_id": withdrawal_id})
    return {"withdrawal_id": withdrawal_id, "status": "rejected"}


def referral_summary(user: Dict) -> Dict:
    """Everything the dashboard shows about a user's referrals."""
    code = user.get("referral_code") or ""
    return {
        "code": code,
        "link": referral_link(code) if code else "",
        "earnings": Decimal(user.get("referral_earnings") or 0),
        "available": available_balance(user),
        "referred_count": count_referred_users(user["id"]),
        "transactions": list_referral_transactions(user["id"], limit=20),
        "withdrawals": list_withdrawals_for_user(user["id"], limit=20),
    }


__all__ = [
    "MIN_WITHDRAWAL_AMOUNT",
    "parse_amount",
    "referral_link",
    "available_balance",
    "request_withdrawal",
    "approve_withdrawal",
    "reject_withdrawal",
    "referral_summary",
]
