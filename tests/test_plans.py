from datetime import datetime, timedelta, timezone
from decimal import Decimal

from core.billing import plans

NOW = datetime(2025, 3, 1, 12, 0, 0)


def _plan(subscription_type="monthly", duration_days=30):
    return {"id": 1, "subscription_type": subscription_type, "duration_days": duration_days, "price": Decimal("99000")}


def test_parse_ts_handles_naive_aware_and_garbage():
    assert plans.parse_ts("2025-03-01T12:00:00") == NOW
    aware = datetime(2025, 3, 1, 17, 0, tzinfo=timezone(timedelta(hours=5)))
    assert plans.parse_ts(aware) == NOW
    assert plans.parse_ts("2025-03-01T12:00:00Z") == NOW
    assert plans.parse_ts("") is None
    assert plans.parse_ts("not a date") is None


def test_new_subscription_starts_from_now():
    grant = plans.resolve_plan_grant(_plan(), {"subscription_type": "free"}, NOW)
    assert grant.subscription_type == "monthly"
    assert grant.expires_at == "2025-03-31T12:00:00"
    assert grant.grant_agency is False


def test_early_renewal_extends_from_current_expiry():
    user = {"subscription_type": "monthly", "subscription_expires_at": "2025-03-10T00:00:00"}
    grant = plans.resolve_plan_grant(_plan(), user, NOW)
    assert grant.expires_at == "2025-04-09T00:00:00"


def test_renewal_after_expiry_starts_from_now():
    user = {"subscription_type": "monthly", "subscription_expires_at": "2025-02-01T00:00:00"}
    grant = plans.resolve_plan_grant(_plan(), user, NOW)
    assert grant.expires_at == "2025-03-31T12:00:00"


def test_upgrade_carries_remaining_time_to_new_type():
    user = {"subscription_type": "monthly", "subscription_expires_at": "2025-03-11T12:00:00"}
    grant = plans.resolve_plan_grant(_plan("yearly", 365), user, NOW)
    assert grant.subscription_type == "yearly"
    assert plans.parse_ts(grant.expires_at) == datetime(2025, 3, 11, 12) + timedelta(days=365)


def test_lifetime_plan_never_expires():
    grant = plans.resolve_plan_grant(_plan("lifetime", None), {"subscription_type": "monthly"}, NOW)
    assert grant.subscription_type == "lifetime"
    assert grant.expires_at is None


def test_lifetime_user_is_not_downgraded_by_time_limited_plan():
    grant = plans.resolve_plan_grant(_plan("monthly", 30), {"subscription_type": "lifetime"}, NOW)
    assert grant.subscription_type == "lifetime"
    assert grant.expires_at is None


def test_vip_grants_agency_access_with_own_expiry():
    user = {
        "subscription_type": "free",
        "has_agency_access": True,
        "agency_access_expires_at": "2025-03-05T12:00:00",
    }
    grant = plans.resolve_plan_grant(_plan("vip", 30), user, NOW)
    assert grant.subscription_type == "vip"
    assert grant.grant_agency is True
    assert grant.expires_at == "2025-03-31T12:00:00"
    assert grant.agency_expires_at == "2025-04-04T12:00:00"


def test_referral_commission_rounds_half_up():
    assert plans.referral_commission(Decimal("99000")) == Decimal("9900.00")
    assert plans.referral_commission(Decimal("0.05"), rate=Decimal("0.10")) == Decimal("0.01")
    assert plans.referral_commission("12345.67", rate=Decimal("0.15")) == Decimal("1851.85")


def test_has_active_subscription():
    assert plans.has_active_subscription(None) is False
    assert plans.has_active_subscription({"subscription_type": "free"}) is False
    assert plans.has_active_subscription({"subscription_type": "lifetime"}, NOW) is True
    active = {"subscription_type": "monthly", "subscription_expires_at": "2025-03-02T00:00:00"}
    expired = {"subscription_type": "monthly", "subscription_expires_at": "2025-02-28T00:00:00"}
    assert plans.has_active_subscription(active, NOW) is True
    assert plans.has_active_subscription(expired, NOW) is False


def test_days_left_rounds_partial_days_up():
    user = {"subscription_expires_at": "2025-03-03T13:00:00"}
    assert plans.days_left(user, NOW) == 3
    assert plans.days_left({"subscription_expires_at": "2025-02-01T00:00:00"}, NOW) == 0
    assert plans.days_left({"subscription_expires_at": None}, NOW) is None


def test_compute_expiry():
    assert plans.compute_expiry(None, "lifetime", None, NOW) is None
    assert plans.compute_expiry(0, "monthly", None, NOW) is None
    assert plans.compute_expiry(30, "monthly", None, NOW) == datetime(2025, 3, 31, 12)
    assert plans.compute_expiry(30, "monthly", "2025-03-05T12:00:00", NOW) == datetime(2025, 4, 4, 12)
    assert plans.compute_expiry(30, "monthly", "garbage", NOW) == datetime(2025, 3, 31, 12)
