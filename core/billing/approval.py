"""
Manual payment approval workflow.

A user submits a payment with a receipt; an admin approves or rejects it.
Approval grants access (subscription or course), pays the referrer's commission
whether or not anything new was granted, and writes the audit row in one
transaction. The result email goes out only after commit, and a failed send
never undoes the approval.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.billing.plans import referral_commission, resolve_plan_grant
from core.db.audit import write_audit
from core.db.base import transaction
from core.db.catalog import effective_course_price, get_course, get_plan
from core.db.payments import get_payment, insert_payment, lock_payment, set_payment_status
from core.db.referrals import insert_referral_transaction
from core.db.subscriptions import (
    add_referral_earnings,
    apply_subscription,
    grant_course_access,
    lock_user_subscription,
)
from core.errors import InvalidTransition, PaymentNotFound, ValidationFailed
from core.notifications import display_name, payment_result_email, send_html_email

log = logging.getLogger("billing")


@dataclass
class ApprovalResult:
    payment_id: int
    status: str
    # "subscription", "course", "course_already_owned" or None
    access: Optional[str] = None
    subscription_type: Optional[str] = None
    expires_at: Optional[str] = None
    commission: Optional[Decimal] = None
    email_sent: bool = False


def submit_payment(
    *,
    user_id: int,
    plan_id: int | None = None,
    course_id: int | None = None,
    receipt_url: str | None = None,
    payment_method: str | None = None,
) -> int:
    """Create a pending payment priced from the plan or course. Returns the payment id."""
    if bool(plan_id) == bool(course_id):
        raise ValidationFailed("Choose exactly one plan or course.")

    if plan_id:
        plan = get_plan(plan_id)
        if not plan or not plan.get("is_active"):
            raise ValidationFailed("This plan is not available.")
        amount = Decimal(plan["price"])
    else:
        course = get_course(course_id)
        if not course or not course.get("is_published"):
            raise ValidationFailed("This course is not available.")
        amount = effective_course_price(course)

    payment_id = insert_payment(
        user_id=user_id,
        amount=amount,
        plan_id=plan_id,
        course_id=course_id,
        receipt_url=receipt_url,
        payment_method=payment_method,
    )
    log.info("Payment submitted", extra={"payment_id": payment_id, "user_id": user_id, "amount": str(amount)})
    return payment_id


def approve_payment(
    payment_id: int,
    admin_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
    notify: bool = True,
) -> ApprovalResult:
    now = now or datetime.utcnow()
    now_iso = now.isoformat(timespec="seconds")
    result = ApprovalResult(payment_id=payment_id, status="approved")

    with transaction() as cur:
        payment = lock_payment(cur, payment_id)
        if not payment:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        if payment["status"] != "pending":
            raise InvalidTransition("payment", payment_id, payment["status"], "approved")

        set_payment_status(cur, payment_id, status="approved", admin_id=admin_id, notes=notes, now=now_iso)
        user = lock_user_subscription(cur, payment["user_id"])

        if payment.get("plan_id"):
            plan = get_plan(payment["plan_id"], cur=cur)
            if plan:
                grant = resolve_plan_grant(plan, user, now)
                apply_subscription(
                    cur,
                    user["id"],
                    subscription_type=grant.subscription_type,
                    expires_at=grant.expires_at,
                    grant_agency=grant.grant_agency,
                    agency_expires_at=grant.agency_expires_at,
                )
                result.access = "subscription"
                result.subscription_type = grant.subscription_type
                result.expires_at = grant.expires_at
            else:
                log.warning("Approved payment references a missing plan", extra={"payment_id": payment_id})

        if payment.get("course_id"):
            enrolled = grant_course_access(
                cur, user_id=user["id"], course_id=payment["course_id"], payment_id=payment_id, now=now_iso
            )
            result.access = "course" if enrolled else "course_already_owned"

        if user.get("referred_by"):
            commission = referral_commission(payment["amount"])
            if commission > 0 and insert_referral_transaction(
                cur,
                referrer_id=user["referred_by"],
                referred_user_id=user["id"],
                payment_id=payment_id,
                amount=commission,
                now=now_iso,
            ):
                add_referral_earnings(cur, user["referred_by"], commission)
                result.commission = commission

        write_audit(
            cur,
            actor_user_id=admin_id,
            action="payment_approved",
            table_name="payments",
            record_id=payment_id,
            details={
                "user_id": user["id"],
                "amount": payment["amount"],
                "access": result.access,
                "subscription_type": result.subscription_type,
                "expires_at": result.expires_at,
                "commission": result.commission,
                "notes": notes,
            },
        )

    log.info(
        "Payment approved",
        extra={"payment_id": payment_id, "access": result.access, "commission": str(result.commission or 0)},
    )
    if notify:
        result.email_sent = notify_payment_result(payment_id, approved=True)
    return result


def reject_payment(
    payment_id: int,
    admin_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
    notify: bool = True,
) -> ApprovalResult:
    now_iso = (now or datetime.utcnow()).isoformat(timespec="seconds")

    with transaction() as cur:
        payment = lock_payment(cur, payment_id)
        if not payment:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        if payment["status"] != "pending":
            raise InvalidTransition("payment", payment_id, payment["status"], "rejected")

        set_payment_status(cur, payment_id, status="rejected", admin_id=admin_id, notes=notes, now=now_iso)
        write_audit(
            cur,
            actor_user_id=admin_id,
            action="payment_rejected",
            table_name="payments",
            record_id=payment_id,
            details={"user_id": payment["user_id"], "amount": payment["amount"], "notes": notes},
        )

    log.info("Payment rejected", extra={"payment_id": payment_id})
    result = ApprovalResult(payment_id=payment_id, status="rejected")
    if notify:
        result.email_sent = notify_payment_result(payment_id, approved=False)
    return result


def notify_payment_result(payment_id: int, approved: bool) -> bool:
    """Email the payer about the decision. Returns False (and logs) on any delivery problem."""
    payment = get_payment(payment_id)
    if not payment or not payment.get("email"):
        log.warning("No recipient for payment email", extra={"payment_id": payment_id})
        return False

    item_name = payment.get("plan_name") or payment.get("course_title") or "Purchase"
    subject, html_body, text_body = payment_result_email(
        approved=approved,
        user_name=display_name(payment.get("full_name"), payment["email"]),
        item_name=item_name,
        amount=payment["amount"],
    )
    try:
        send_html_email(payment["email"], subject, html_body, text_body)
    except Exception as exc:
        log.error("Failed to send payment email", extra={"payment_id": payment_id, "to": payment["email"], "error": str(exc)})
        return False
    return True


__all__ = [
    "ApprovalResult",
    "submit_payment",
    "approve_payment",
    "reject_payment",
    "notify_payment_result",
]
