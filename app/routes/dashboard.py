import logging

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import get_current_user
from app.layout import esc, format_dt, money, notice, render_page
from app.media import save_receipt
from app.security import (
    CSRF_COOKIE_NAME,
    attach_csrf_cookie,
    check_rate_limit,
    issue_csrf_token,
    validate_csrf,
)
from core.billing.approval import submit_payment
from core.billing.plans import PLAN_LABELS, days_left, has_active_subscription
from core.billing.referrals import MIN_WITHDRAWAL_AMOUNT, referral_summary, request_withdrawal
from core.database import (
    effective_course_price,
    list_payments_for_user,
    list_plans,
    list_published_courses,
    list_user_courses,
    update_user_profile,
)
from core.errors import ValidationFailed

log = logging.getLogger("dashboard")

router = APIRouter()

_STATUS_LABELS = {"pending": "Pending review", "approved": "Approved", "rejected": "Rejected"}


def _subscription_card(user: dict) -> str:
    sub_type = user.get("subscription_type") or "free"
    label = PLAN_LABELS.get(sub_type, sub_type.title())
    if sub_type == "lifetime":
        status = "Lifetime access"
    elif has_active_subscription(user):
        status = f"Active until {format_dt(user.get('subscription_expires_at'))} ({days_left(user)} days left)"
    elif sub_type == "free":
        status = 'Free plan. <a href="/payment">Upgrade</a>'
    else:
        status = 'Expired. <a href="/payment">Renew</a>'

    agency = ""
    if user.get("has_agency_access"):
        agency = f"<p class='muted'>Agency access until {esc(format_dt(user.get('agency_access_expires_at')))}</p>"

    return f"""
    <div class="card">
      <h2>Subscription</h2>
      <div class="stats">
        <div class="stat"><div class="label">Plan</div><div class="value">{esc(label)}</div></div>
      </div>
      <p>{status}</p>
      {agency}
    </div>
    """


def _referral_card(user: dict, csrf_token: str, plans: list[dict], error: str | None = None) -> str:
    summary = referral_summary(user)

    tx_rows = "".join(
        f"<tr><td>{esc(format_dt(t.get('created_at')))}</td><td>{esc(t.get('referred_email'))}</td><td>{money(t.get('amount'))}</td></tr>"
        for t in summary["transactions"]
    ) or '<tr><td colspan="3">No commissions yet.</td></tr>'

    wd_rows = "".join(
        f"<tr><td>{esc(format_dt(w.get('created_at')))}</td><td>{esc(w.get('type'))}</td>"
        f"<td>{money(w.get('amount'))}</td><td>{esc(_STATUS_LABELS.get(w.get('status'), w.get('status')))}</td></tr>"
        for w in summary["withdrawals"]
    ) or '<tr><td colspan="4">No withdrawals yet.</td></tr>'

    plan_options = "".join(
        f'<option value="{p["id"]}">{esc(p["name"])} ({money(p["price"])})</option>' for p in plans
    )

    return f"""
    <div class="card">
      <h2>Referrals</h2>
      <p>Your link: <code>{esc(summary['link'])}</code></p>
      <div class="stats">
        <div class="stat"><div class="label">Invited users</div><div class="value">{summary['referred_count']}</div></div>
        <div class="stat"><div class="label">Earnings</div><div class="value">{money(summary['earnings'])}</div></div>
        <div class="stat"><div class="label">Available</div><div class="value">{money(summary['available'])}</div></div>
      </div>
      {notice(error)}
      <form method="post" action="/referrals/withdraw">
        <label>Withdraw as</label>
        <select name="type">
          <option value="cash">Cash to card</option>
          <option value="subscription">Subscription</option>
        </select>
        <label>Amount (cash only, minimum {money(MIN_WITHDRAWAL_AMOUNT)})</label>
        <input type="text" name="amount" inputmode="numeric" maxlength="20" />
        <label>Card number (16 digits)</label>
        <input type="text" name="card_number" inputmode="numeric" maxlength="19" />
        <label>Card holder</label>
        <input type="text" name="card_holder" maxlength="100" />
        <label>Plan (subscription)</label>
        <select name="plan_id"><option value="">-</option>{plan_options}</select>
        <input type="hidden" name="csrf_token" value="{esc(csrf_token)}" />
        <button type="submit">Request withdrawal</button>
      </form>
      <h3>Commissions</h3>
      <table><thead><tr><th>Date</th><th>Referred user</th><th>Amount</th></tr></thead><tbody>{tx_rows}</tbody></table>
      <h3>Withdrawals</h3>
      <table><thead><tr><th>Date</th><th>Type</th><th>Amount</th><th>Status</th></tr></thead><tbody>{wd_rows}</tbody></table>
    </div>
    """


def _payments_table(payments: list[dict]) -> str:
    rows = ""
    for p in payments:
        item = p.get("plan_name") or p.get("course_title") or "Purchase"
        note = f"<div class='muted'>{esc(p.get('admin_notes'))}</div>" if p.get("admin_notes") else ""
        rows += f"""
        <tr>
          <td>{esc(format_dt(p.get('created_at')))}</td>
          <td>{esc(item)}</td>
          <td>{money(p.get('amount'))}</td>
          <td>{esc(_STATUS_LABELS.get(p.get('status'), p.get('status')))}{note}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="4">No payments yet.</td></tr>'
    return f"""
    <table>
      <thead><tr><th>Date</th><th>Item</th><th>Amount</th><th>Status</th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
    """


def _render_dashboard(request: Request, user: dict, error: str | None = None, status_code: int = 200):
    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    plans = list_plans(active_only=True)
    courses = list_user_courses(user["id"])
    course_items = "".join(f"<li>{esc(c.get('title'))}</li>" for c in courses) or "<li>No courses yet.</li>"
    flash = ""
    if request.query_params.get("withdrawal") == "requested":
        flash = notice("Withdrawal requested. An admin will review it shortly.", kind="ok")
    elif request.query_params.get("profile") == "saved":
        flash = notice("Profile saved.", kind="ok")

    body = f"""
    {flash}
    {_subscription_card(user)}
    <div class="card">
      <h2>My courses</h2>
      <ul>{course_items}</ul>
    </div>
    <div class="card">
      <h2>Payments</h2>
      {_payments_table(list_payments_for_user(user["id"], limit=20))}
    </div>
    {_referral_card(user, csrf_token, plans, error=error)}
    <div class="card form-card">
      <h2>Profile</h2>
      <form method="post" action="/account/profile">
        <label>Full name</label>
        <input type="text" name="full_name" maxlength="100" value="{esc(user.get('full_name'))}" />
        <label>Phone</label>
        <input type="text" name="phone" maxlength="30" value="{esc(user.get('phone'))}" />
        <input type="hidden" name="csrf_token" value="{esc(csrf_token)}" />
        <button type="submit">Save</button>
      </form>
    </div>
    """
    resp = render_page("Dashboard", body, user=user, status_code=status_code)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    return _render_dashboard(request, user)


def _render_payment_page(request: Request, user: dict, error: str | None = None, status_code: int = 200):
    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    plans = list_plans(active_only=True)
    courses = list_published_courses()

    plan_options = "".join(
        f'<label><input type="radio" name="plan_id" value="{p["id"]}" /> '
        f'{esc(p["name"])} - {money(p["price"])}'
        f'{" / " + str(p["duration_days"]) + " days" if p.get("duration_days") else ""}</label>'
        for p in plans
    )
    course_options = "".join(
        f'<option value="{c["id"]}">{esc(c["title"])} ({money(effective_course_price(c))})</option>' for c in courses
    )
    flash = ""
    if request.query_params.get("submitted"):
        flash = notice("Payment submitted. We will review your receipt shortly.", kind="ok")

    body = f"""
    {flash}
    <div class="card form-card">
      <h2>Choose a plan or course</h2>
      {notice(error)}
      <form method="post" action="/payment" enctype="multipart/form-data">
        {plan_options or "<p class='muted'>No plans available.</p>"}
        <label>Or buy a course</label>
        <select name="course_id"><option value="">-</option>{course_options}</select>
        <label>Payment method</label>
        <select name="payment_method">
          <option value="card_transfer">Card transfer</option>
          <option value="bank_transfer">Bank transfer</option>
        </select>
        <label>Receipt (image, up to 5 MB)</label>
        <input type="file" name="receipt" accept="image/*" required />
        <input type="hidden" name="csrf_token" value="{esc(csrf_token)}" />
        <button type="submit">Submit payment</button>
      </form>
    </div>
    <div class="card">
      <h2>Payment history</h2>
      {_payments_table(list_payments_for_user(user["id"], limit=50))}
    </div>
    """
    resp = render_page("Plans & payment", body, user=user, status_code=status_code)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.get("/payment", response_class=HTMLResponse)
def payment_page(request: Request):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    return _render_payment_page(request, user)


def _optional_int(raw: str) -> int | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailed("Invalid selection.") from None


@router.post("/payment", response_class=HTMLResponse)
async def submit_payment_form(
    request: Request,
    plan_id: str = Form(""),
    course_id: str = Form(""),
    payment_method: str = Form("card_transfer", max_length=30),
    csrf_token: str = Form(""),
    receipt: UploadFile | None = File(None),
):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)

    allowed, _ = check_rate_limit("payment", request)
    if not allowed:
        return HTMLResponse("Too many payment submissions. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        plan = _optional_int(plan_id)
        course = _optional_int(course_id)
        if receipt is None or not receipt.filename:
            raise ValidationFailed("Please attach the payment receipt.")
        data = await receipt.read()
        receipt_path = save_receipt(user["id"], receipt.content_type, data)
        submit_payment(
            user_id=user["id"],
            plan_id=plan,
            course_id=course,
            receipt_url=receipt_path,
            payment_method=payment_method,
        )
    except ValidationFailed as e:
        return _render_payment_page(request, user, error=str(e), status_code=400)

    return RedirectResponse(url="/payment?submitted=1", status_code=303)


@router.post("/referrals/withdraw", response_class=HTMLResponse)
def withdraw(
    request: Request,
    type: str = Form("cash", max_length=20),
    amount: str = Form("", max_length=20),
    card_number: str = Form("", max_length=19),
    card_holder: str = Form("", max_length=100),
    plan_id: str = Form(""),
    csrf_token: str = Form(""),
):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)

    allowed, _ = check_rate_limit("withdraw", request)
    if not allowed:
        return HTMLResponse("Too many withdrawal requests. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        request_withdrawal(
            user_id=user["id"],
            amount=amount,
            type=type,
            card_number=card_number,
            card_holder=card_holder,
            plan_id=_optional_int(plan_id),
        )
    except ValidationFailed as e:
        return _render_dashboard(request, user, error=str(e), status_code=400)

    return RedirectResponse(url="/dashboard?withdrawal=requested", status_code=303)


@router.post("/account/profile")
def update_profile(
    request: Request,
    full_name: str = Form("", max_length=100),
    phone: str = Form("", max_length=30),
    csrf_token: str = Form(""),
):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    update_user_profile(user["id"], full_name.strip() or None, phone.strip() or None)
    return RedirectResponse(url="/dashboard?profile=saved", status_code=303)
