"""
Pure rules for turning a pricing plan into subscription state.

No database access here: callers pass in the plan and the user's current
subscription fields and write the result themselves.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

REFERRAL_COMMISSION_RATE = Decimal(os.getenv("REFERRAL_COMMISSION_RATE", "0.10"))

PLAN_LABELS = {
    "vip": "VIP",
    "yearly": "Yearly",
    "monthly": "Monthly",
    "lifetime": "Lifetime",
    "single": "Single",
    "free": "Free",
}


@dataclass(frozen=True)
class PlanGrant:
    subscription_type: str
    expires_at: Optional[str]
    grant_agency: bool = False
    agency_expires_at: Optional[str] = None


def parse_ts(value) -> Optional[datetime]:
    """Parse a stored ISO timestamp into a naive UTC datetime (None if empty or invalid)."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat(timespec="seconds") if dt else None


def compute_expiry(
    duration_days: Optional[int],
    subscription_type: str,
    current_expires_at,
    now: datetime,
) -> Optional[datetime]:
    """
    Expiry for a newly approved plan.
    - lifetime plans and plans without a duration never expire (None)
    - an unexpired current subscription is extended from its expiry, otherwise from now
    """
    if subscription_type == "lifetime" or not duration_days:
        return None
    base = now
    current = parse_ts(current_expires_at)
    if current and current > now:
        base = current
    return base + timedelta(days=int(duration_days))


def resolve_plan_grant(plan: Dict, user: Dict, now: datetime) -> PlanGrant:
    """Decide the user's subscription after buying `plan`."""
    plan_type = plan["subscription_type"]
    duration = plan.get("duration_days")
    current_type = user.get("subscription_type") or "free"

    if current_type == "lifetime" and plan_type != "lifetime":
        sub_type, expires = "lifetime", None
    else:
        carry = user.get("subscription_expires_at") if current_type not in ("free", "lifetime") else None
        sub_type = plan_type
        expires = compute_expiry(duration, plan_type, carry, now)

    if plan_type != "vip":
        return PlanGrant(subscription_type=sub_type, expires_at=to_iso(expires))

    agency_carry = user.get("agency_access_expires_at") if user.get("has_agency_access") else None
    agency_expires = compute_expiry(duration, plan_type, agency_carry, now)
    return PlanGrant(
        subscription_type=sub_type,
        expires_at=to_iso(expires),
        grant_agency=True,
        agency_expires_at=to_iso(agency_expires),
    )


def referral_commission(amount, rate: Decimal | None = None) -> Decimal:
    """Commission owed to the referrer, rounded to 2 decimals."""
    rate = REFERRAL_COMMISSION_RATE if rate is None else rate
    return (Decimal(amount) * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def has_active_subscription(user: Dict | None, now: datetime | None = None) -> bool:
    """Paid type and either no expiry (lifetime) or an expiry in the future."""
    if not user:
        return False
    sub_type = user.get("subscription_type") or "free"
    if sub_type == "free":
        return False
    expires = parse_ts(user.get("subscription_expires_at"))
    return expires is None or expires > (now or datetime.utcnow())


def days_left(user: Dict, now: datetime | None = None) -> Optional[int]:
    expires = parse_ts(user.get("subscription_expires_at"))
    if not expires:
        return None
    delta = expires - (now or datetime.utcnow())
    return max(0, delta.days + (1 if delta.seconds else 0))


__all__ = [
    "REFERRAL_COMMISSION_RATE",
    "PLAN_LABELS",
    "PlanGrant",
    "parse_ts",
    "to_iso",
    "compute_expiry",
    "resolve_plan_grant",
    "referral_commission",
    "has_active_subscription",
    "days_left",
]
