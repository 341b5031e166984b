import logging

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import clear_session_cookie, get_current_user, set_session_cookie
from app.layout import esc, notice, render_page
from app.security import (
    CSRF_COOKIE_NAME,
    attach_csrf_cookie,
    check_rate_limit,
    issue_csrf_token,
    validate_csrf,
)
from core.database import (
    create_session,
    create_user,
    delete_session,
    get_user_by_email,
    get_user_by_referral_code,
    password_problems,
    verify_password,
)

log = logging.getLogger("auth")

router = APIRouter()


def _normalize_email(email: str) -> str | None:
    """Syntax-checked, normalized address, or None. No DNS lookups."""
    email = (email or "").strip()
    if not email or len(email) > 100:
        return None
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def _login_form(csrf_token: str, email: str = "", error: str | None = None, attempts_left: int | None = None) -> str:
    attempts_html = f"<p class='muted'>Attempts left: {attempts_left}</p>" if attempts_left is not None else ""
    return f"""
    <div class="card form-card">
      <p class="muted">Log in to your account.</p>
      {notice(error)}
      {attempts_html}
      <form method="post" action="/login">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{esc(email)}" />

        <label>Password</label>
        <input type="password" name="password" required maxlength="64" />

        <input type="hidden" name="csrf_token" value="{esc(csrf_token)}" />
        <button type="submit">Login</button>
      </form>
      <p class="muted">No account yet? <a href="/register">Register</a></p>
    </div>
    """


def _register_form(csrf_token: str, ref: str = "", email: str = "", full_name: str = "", error: str | None = None) -> str:
    ref_html = ""
    if ref:
        ref_html = f'<p class="muted">Invited with referral code <strong>{esc(ref)}</strong>.</p>'
    return f"""
    <div class="card form-card">
      {ref_html}
      {notice(error)}
      <form method="post" action="/register">
        <label>Full name</label>
        <input type="text" name="full_name" maxlength="100" value="{esc(full_name)}" />

        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{esc(email)}" />

        <label>Password</label>
        <input type="password" name="password" required maxlength="64" />
        <label>Repeat password</label>
        <input type="password" name="password2" required maxlength="64" />

        <input type="hidden" name="ref" value="{esc(ref)}" />
        <input type="hidden" name="csrf_token" value="{esc(csrf_token)}" />
        <button type="submit">Create account</button>
      </form>
      <p class="muted">At least 8 characters with a letter and a digit.</p>
    </div>
    """


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    resp = render_page("Login", _login_form(csrf_token), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/login", response_class=HTMLResponse)
def login(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    csrf_token: str = Form(""),
):
    allowed, remaining = check_rate_limit("login", request)
    if not allowed:
        return HTMLResponse("Too many login attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    if not user or not verify_password(password, user["password_hash"]):
        # Same message for unknown email and wrong password
        body = _login_form(csrf_token, email=email, error="Incorrect email or password.", attempts_left=remaining)
        return render_page("Login", body, user=None, status_code=401)

    if not user.get("active"):
        body = _login_form(csrf_token, email=email, error="This account has been blocked. Contact support.")
        return render_page("Login", body, user=None, status_code=403)

    token = create_session(user["id"])
    log.info("User logged in", extra={"user_id": user["id"]})
    target = "/admin" if user.get("role") == "admin" else "/dashboard"
    response = RedirectResponse(url=target, status_code=303)
    set_session_cookie(response, token)
    return response


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request, ref: str = ""):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    ref = ref.strip().upper()[:16]
    resp = render_page("Create account", _register_form(csrf_token, ref=ref), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/register", response_class=HTMLResponse)
def register(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    password2: str = Form(..., max_length=64),
    full_name: str = Form("", max_length=100),
    ref: str = Form("", max_length=16),
    csrf_token: str = Form(""),
):
    allowed, _ = check_rate_limit("register", request)
    if not allowed:
        return HTMLResponse("Too many attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    ref = ref.strip().upper()
    full_name = full_name.strip()

    def _fail(message: str, status_code: int = 400):
        body = _register_form(csrf_token, ref=ref, email=email, full_name=full_name, error=message)
        return render_page("Create account", body, user=None, status_code=status_code)

    normalized = _normalize_email(email)
    if not normalized:
        return _fail("Please enter a valid email address.")
    email = normalized
    problems = password_problems(password)
    if problems:
        return _fail(" ".join(problems))
    if password != password2:
        return _fail("Passwords do not match.")
    if get_user_by_email(email):
        return _fail("An account with this email already exists.", status_code=409)

    referrer_id = None
    if ref:
        referrer = get_user_by_referral_code(ref)
        if referrer:
            referrer_id = referrer["id"]
        else:
            log.info("Unknown referral code at registration", extra={"ref": ref})

    user_id = create_user(email, password, full_name=full_name or None, referred_by=referrer_id)
    log.info("User registered", extra={"user_id": user_id, "referred_by": referrer_id})

    session_token = create_session(user_id)
    resp = RedirectResponse(url="/dashboard", status_code=303)
    set_session_cookie(resp, session_token)
    return resp


@router.get("/logout")
def logout(request: Request):
    _, token = get_current_user(request)
    if token:
        delete_session(token)
    response = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(response)
    return response
