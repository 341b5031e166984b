"""
Subscription lifecycle batch: reminder emails and expiry.

Reminders run before expiry in a cycle so the "expired" reminder still sees
the paid subscription type before the user is downgraded to free.
"""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from core.billing.plans import parse_ts
from core.db.audit import write_audit
from core.db.base import transaction, utcnow_iso
from core.db.reminders import get_sent_reminder_keys, list_reminders, record_reminder
from core.db.subscriptions import (
    expire_due_subscriptions,
    get_expiring_subscriptions,
    revoke_expired_agency_access,
)
from core.db.users import purge_expired_sessions
from core.notifications import display_name, reminder_email, send_html_email

log = logging.getLogger("worker")

# An "expired" reminder is only sent if the expiry is this recent.
EXPIRED_REMINDER_GRACE_DAYS = 7
EXPORT_LIMIT = 10000


def classify_reminder(expires_at, now: datetime) -> Optional[str]:
    """Map time left until expiry onto a reminder bucket (None if no reminder is due)."""
    expires = parse_ts(expires_at)
    if not expires:
        return None
    days_left = (expires - now).total_seconds() / 86400
    if days_left <= 0:
        if -days_left <= EXPIRED_REMINDER_GRACE_DAYS:
            return "expired"
        return None
    if days_left <= 1:
        return "1_day"
    if days_left <= 3:
        return "3_days"
    if days_left <= 7:
        return "7_days"
    return None


def get_subscription_reminders(now: datetime | None = None) -> List[Dict]:
    """Users owed a reminder right now that was not already sent for this expiry."""
    now = now or datetime.utcnow()
    candidates = get_expiring_subscriptions()
    sent = get_sent_reminder_keys([int(c["user_id"]) for c in candidates])

    due: List[Dict] = []
    for c in candidates:
        reminder_type = classify_reminder(c.get("subscription_expires_at"), now)
        if not reminder_type:
            continue
        key = (int(c["user_id"]), reminder_type, c.get("subscription_expires_at"))
        if key in sent:
            continue
        due.append(
            {
                "user_id": int(c["user_id"]),
                "email": c["email"],
                "full_name": c.get("full_name"),
                "subscription_type": c["subscription_type"],
                "expires_at": c.get("subscription_expires_at"),
                "reminder_type": reminder_type,
            }
        )
    return due


def _log_sent_reminder(reminder: Dict) -> None:
    with transaction() as cur:
        inserted = record_reminder(
            cur,
            user_id=reminder["user_id"],
            reminder_type=reminder["reminder_type"],
            subscription_type=reminder["subscription_type"],
            expires_at=reminder["expires_at"],
            sent_at=utcnow_iso(),
        )
        if not inserted:
            log.info("Reminder already logged", extra={"user_id": reminder["user_id"], "reminder_type": reminder["reminder_type"]})
        write_audit(
            cur,
            actor_user_id=None,
            action="subscription_reminder_sent",
            table_name="users",
            record_id=reminder["user_id"],
            details={
                "reminder_type": reminder["reminder_type"],
                "subscription_type": reminder["subscription_type"],
                "expires_at": reminder["expires_at"],
            },
        )


def send_due_reminders(now: datetime | None = None) -> Tuple[Dict[str, int], List[int]]:
    """
    Send every due reminder.
    A failed send is counted and left unrecorded so the next run retries it.
    Returns the counts and the users whose "expired" reminder failed.
    """
    reminders = get_subscription_reminders(now)
    if not reminders:
        log.info("No reminders to send")
        return {"sent": 0, "errors": 0, "total": 0}, []

    sent_count = 0
    error_count = 0
    failed_expired: List[int] = []
    for r in reminders:
        subject, html_body, text_body = reminder_email(
            reminder_type=r["reminder_type"],
            user_name=display_name(r.get("full_name"), r["email"]),
            subscription_type=r["subscription_type"],
            expires_at=r["expires_at"],
        )
        try:
            send_html_email(r["email"], subject, html_body, text_body)
        except Exception as e:
            log.error("Failed to send reminder", extra={"to": r["email"], "reminder_type": r["reminder_type"], "error": str(e)})
            error_count += 1
            if r["reminder_type"] == "expired":
                failed_expired.append(r["user_id"])
            continue

        _log_sent_reminder(r)
        sent_count += 1
        log.info("Reminder sent", extra={"to": r["email"], "reminder_type": r["reminder_type"]})

    return {"sent": sent_count, "errors": error_count, "total": len(reminders)}, failed_expired


def run_reminders(now: datetime | None = None) -> Dict[str, int]:
    counts, _ = send_due_reminders(now)
    return counts


def expire_subscriptions(now: datetime | None = None, hold_user_ids=()) -> Dict[str, int]:
    """
    Downgrade lapsed subscriptions and revoke lapsed agency access.
    hold_user_ids keep their paid type until their "expired" reminder is delivered.
    """
    now_iso = (now or datetime.utcnow()).isoformat(timespec="seconds")
    expired = expire_due_subscriptions(now_iso, exclude_user_ids=hold_user_ids)
    revoked = revoke_expired_agency_access(now_iso)
    result = {"expired_subscriptions": expired, "revoked_agency_access": revoked}
    log.info("Expiry pass complete", extra=result)
    return result


def run_cycle(now: datetime | None = None) -> Dict:
    now = now or datetime.utcnow()
    reminders, held = send_due_reminders(now)
    if held:
        log.warning("Holding downgrade until the expired reminder is delivered", extra={"user_ids": held})
    expiry = expire_subscriptions(now, hold_user_ids=held)
    purged = purge_expired_sessions(now.isoformat(timespec="seconds"))
    return {"reminders": reminders, "expiry": expiry, "sessions_purged": purged}


def export_reminders_csv(
    *,
    reminder_type: str | None = None,
    subscription_type: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> str:
    rows, _ = list_reminders(
        reminder_type=reminder_type,
        subscription_type=subscription_type,
        date_from=date_from,
        date_to=date_to,
        page=0,
        page_size=EXPORT_LIMIT,
    )
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["Email", "Name", "Subscription type", "Reminder type", "Expires", "Sent"])
    for r in rows:
        expires = parse_ts(r.get("expires_at"))
        sent = parse_ts(r.get("sent_at"))
        writer.writerow(
            [
                r.get("email") or "",
                r.get("full_name") or "",
                r.get("subscription_type"),
                r.get("reminder_type"),
                expires.date().isoformat() if expires else "",
                sent.date().isoformat() if sent else "",
            ]
        )
    return buf.getvalue()


def days_until_expiry(expires_at, sent_at) -> Optional[int]:
    """Whole days between when a reminder went out and the expiry it warned about."""
    expires = parse_ts(expires_at)
    sent = parse_ts(sent_at)
    if not expires or not sent:
        return None
    return round((expires - sent) / timedelta(days=1))


__all__ = [
    "EXPIRED_REMINDER_GRACE_DAYS",
    "classify_reminder",
    "get_subscription_reminders",
    "send_due_reminders",
    "run_reminders",
    "expire_subscriptions",
    "run_cycle",
    "export_reminders_csv",
    "days_until_expiry",
]
