"""
Who is making this request: session cookie lookup and the admin gate.
"""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from app.security import SECURE_COOKIES
from core.database import SESSION_TIMEOUT_MINUTES, delete_session, get_session, get_user_by_id, touch_session

SESSION_COOKIE_NAME = "session_id"


def get_current_user(request: Request):
    """
    Return (user, session_token). user is None when there is no valid session
    or the account was blocked; a blocked user's session is deleted.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None, None

    session = get_session(token)
    user = get_user_by_id(session["user_id"]) if session else None
    if session and (not user or not user.get("active")):
        delete_session(token)
        user = None
    if not user:
        return None, token

    touch_session(token)
    return user, token


def require_admin(request: Request):
    """(admin, None) for admins; otherwise (None, redirect-to-login or 403 response)."""
    user, _ = get_current_user(request)
    if not user:
        return None, RedirectResponse(url="/login", status_code=303)
    if user.get("role") != "admin":
        return None, HTMLResponse("Forbidden", status_code=403)
    return user, None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        max_age=SESSION_TIMEOUT_MINUTES * 60,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
