"""
Request guards shared by the routes: double-submit CSRF, per-IP rate limits
for the public forms, and the bearer secret the external scheduler sends to
/internal endpoints.
"""
from __future__ import annotations

import hmac
import os
import secrets
import time
from typing import Dict, List, Tuple

CSRF_COOKIE_NAME = "csrf_token"
SECURE_COOKIES = (
    os.getenv("COOKIE_SECURE", "").lower() in ("1", "true", "yes")
    or os.getenv("PUBLIC_BASE_URL", "").lower().startswith("https://")
)

# action -> (max requests, window seconds), counted per client IP
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "login": (10, 300),
    "register": (10, 300),
    "payment": (5, 300),
    "withdraw": (5, 300),
}


def issue_csrf_token(existing: str | None = None) -> str:
    return existing or secrets.token_urlsafe(16)


def attach_csrf_cookie(response, token: str) -> None:
    # Readable by the page (httponly=False); the form echoes it back.
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


def validate_csrf(request, form_token: str | None) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME) or ""
    if not cookie_token or not form_token:
        return False
    return hmac.compare_digest(cookie_token, form_token)


def client_ip(request) -> str:
    return request.client.host if request and request.client else "unknown"


def has_cron_secret(request) -> bool:
    """True when the request carries `Authorization: Bearer $CRON_SECRET`."""
    secret = os.getenv("CRON_SECRET") or ""
    if not secret:
        return False
    scheme, _, value = (request.headers.get("authorization") or "").partition(" ")
    return scheme.lower() == "bearer" and hmac.compare_digest(value.strip(), secret)


# -------- Rate limiting (in-memory, per process) --------
_hits: Dict[str, List[float]] = {}


def allow_request_with_remaining(key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
    """Sliding window over the last `window_seconds`. Returns (allowed, remaining_after)."""
    now = time.time()
    recent = [t for t in _hits.get(key, []) if t > now - window_seconds]
    if len(recent) >= limit:
        _hits[key] = recent
        return False, 0
    recent.append(now)
    _hits[key] = recent
    return True, limit - len(recent)


def check_rate_limit(action: str, request) -> Tuple[bool, int]:
    """Apply the RATE_LIMITS entry for `action` to this client."""
    limit, window = RATE_LIMITS[action]
    return allow_request_with_remaining(f"{action}:{client_ip(request)}", limit, window)


def reset_rate_limits() -> None:
    _hits.clear()


__all__ = [
    "CSRF_COOKIE_NAME",
    "SECURE_COOKIES",
    "RATE_LIMITS",
    "issue_csrf_token",
    "attach_csrf_cookie",
    "validate_csrf",
    "client_ip",
    "has_cron_secret",
    "allow_request_with_remaining",
    "check_rate_limit",
    "reset_rate_limits",
]
