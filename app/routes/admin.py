import logging
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from app.auth_utils import require_admin
from app.layout import esc, format_dt, money, notice, render_page
from app.media import RECEIPTS_BUCKET, make_signed_url
from app.security import CSRF_COOKIE_NAME, attach_csrf_cookie, issue_csrf_token, validate_csrf
from core.billing.approval import approve_payment, reject_payment
from core.billing.plans import PLAN_LABELS
from core.billing.referrals import approve_withdrawal, reject_withdrawal
from core.database import (
    PAGE_SIZE,
    PAYMENT_STATUSES,
    REMINDER_TYPES,
    SUBSCRIPTION_TYPES,
    WITHDRAWAL_STATUSES,
    count_payments_by_status,
    count_pending_withdrawals,
    create_plan,
    delete_sessions_for_user,
    get_payment,
    get_user_by_id,
    list_audit_entries,
    list_payments,
    list_plans,
    list_reminders,
    list_users,
    list_withdrawals,
    reminder_summary,
    set_plan_active,
    set_user_active,
)
from core.errors import BillingError
from worker.lifecycle import days_until_expiry, export_reminders_csv

log = logging.getLogger("admin")

router = APIRouter(prefix="/admin")

_REMINDER_LABELS = {"7_days": "7 days", "3_days": "3 days", "1_day": "1 day", "expired": "Expired"}


def _admin_page(request: Request, title: str, body: str, user: dict, csrf_token: str, status_code: int = 200):
    resp = render_page(title, body, user=user, status_code=status_code)
    attach_csrf_cookie(resp, csrf_token)
    return resp


def _csrf_field(token: str) -> str:
    return f'<input type="hidden" name="csrf_token" value="{esc(token)}" />'


def _error(exc: BillingError) -> HTMLResponse:
    return HTMLResponse(esc(str(exc)), status_code=exc.status_code)


def _options(values, selected: str | None, labels: dict | None = None) -> str:
    out = '<option value="all">All</option>'
    for v in values:
        sel = " selected" if v == selected else ""
        out += f'<option value="{esc(v)}"{sel}>{esc((labels or {}).get(v, v))}</option>'
    return out


@router.get("", response_class=HTMLResponse)
def overview(request: Request):
    user, denied = require_admin(request)
    if denied:
        return denied

    counts = count_payments_by_status()
    summary = reminder_summary()
    audit_rows = "".join(
        f"<tr><td>{esc(format_dt(a.get('created_at')))}</td><td>{esc(a.get('action'))}</td>"
        f"<td>{esc(a.get('table_name'))} #{esc(a.get('record_id'))}</td></tr>"
        for a in list_audit_entries(limit=20)
    ) or '<tr><td colspan="3">No activity yet.</td></tr>'

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Pending payments</div><div class="value"><a href="/admin/payments?status=pending">{counts['pending']}</a></div></div>
      <div class="stat"><div class="label">Approved payments</div><div class="value">{counts['approved']}</div></div>
      <div class="stat"><div class="label">Pending withdrawals</div><div class="value"><a href="/admin/withdrawals?status=pending">{count_pending_withdrawals()}</a></div></div>
      <div class="stat"><div class="label">Reminders today</div><div class="value">{summary['sent_today']}</div></div>
      <div class="stat"><div class="label">Reminders this week</div><div class="value">{summary['sent_this_week']}</div></div>
    </div>
    <div class="card">
      <h2>Recent activity</h2>
      <table><thead><tr><th>When</th><th>Action</th><th>Record</th></tr></thead><tbody>{audit_rows}</tbody></table>
      <p class="muted"><a href="/admin/users">Users</a> · <a href="/admin/plans">Plans</a></p>
    </div>
    """
    return render_page("Admin", body, user=user)


# -------- Payments --------


@router.get("/payments", response_class=HTMLResponse)
def payments(request: Request, status: str = "pending", q: str = ""):
    user, denied = require_admin(request)
    if denied:
        return denied

    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    rows = list_payments(status=status, search=q)

    rows_html = ""
    for p in rows:
        item = p.get("plan_name") or p.get("course_title") or "Purchase"
        receipt = f'<a href="/admin/payments/{p["id"]}/receipt" target="_blank">Receipt</a>' if p.get("receipt_url") else ""
        actions = ""
        if p.get("status") == "pending":
            actions = f"""
            <form method="post" action="/admin/payments/{p['id']}/approve" style="display:inline">
              {_csrf_field(csrf_token)}
              <input type="text" name="notes" placeholder="Note (optional)" maxlength="500" />
              <button type="submit">Approve</button>
            </form>
            <form method="post" action="/admin/payments/{p['id']}/reject" style="display:inline">
              {_csrf_field(csrf_token)}
              <input type="text" name="notes" placeholder="Reason" maxlength="500" />
              <button type="submit" class="danger">Reject</button>
            </form>
            """
        elif p.get("admin_notes"):
            actions = f"<span class='muted'>{esc(p.get('admin_notes'))}</span>"
        rows_html += f"""
        <tr>
          <td>{p['id']}</td>
          <td>{esc(p.get('email'))}<div class="muted">{esc(p.get('full_name'))}</div></td>
          <td>{esc(item)}</td>
          <td>{money(p.get('amount'))}</td>
          <td>{esc(p.get('payment_method'))}</td>
          <td>{esc(p.get('status'))}</td>
          <td>{esc(format_dt(p.get('created_at')))}</td>
          <td>{receipt}</td>
          <td>{actions}</td>
        </tr>
        """
    if not rows:
        rows_html = '<tr><td colspan="9">No payments match.</td></tr>'

    body = f"""
    <div class="card">
      <form method="get" action="/admin/payments">
        <label>Status</label>
        <select name="status">{_options(PAYMENT_STATUSES, status)}</select>
        <label>Search email or name</label>
        <input type="text" name="q" value="{esc(q)}" maxlength="100" />
        <button type="submit">Filter</button>
      </form>
      <table>
        <thead>
          <tr><th>ID</th><th>User</th><th>Item</th><th>Amount</th><th>Method</th><th>Status</th><th>Created</th><th></th><th>Actions</th></tr>
        </thead>
        <tbody>{rows_html}</tbody>
      </table>
    </div>
    """
    return _admin_page(request, "Payments", body, user, csrf_token)


@router.get("/payments/{payment_id}/receipt")
def payment_receipt(request: Request, payment_id: int):
    _, denied = require_admin(request)
    if denied:
        return denied
    payment = get_payment(payment_id)
    if not payment or not payment.get("receipt_url"):
        return HTMLResponse("Receipt not found", status_code=404)
    signed = make_signed_url(RECEIPTS_BUCKET, payment["receipt_url"])
    return RedirectResponse(url=signed["signed_url"], status_code=303)


@router.post("/payments/{payment_id}/approve")
def approve_payment_route(request: Request, payment_id: int, notes: str = Form("", max_length=500), csrf_token: str = Form("")):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        result = approve_payment(payment_id, admin_id=user["id"], notes=notes.strip() or None)
    except BillingError as e:
        return _error(e)

    if not result.email_sent:
        log.warning("Payment approved without email confirmation", extra={"payment_id": payment_id})
    return RedirectResponse(url="/admin/payments?status=pending", status_code=303)


@router.post("/payments/{payment_id}/reject")
def reject_payment_route(request: Request, payment_id: int, notes: str = Form("", max_length=500), csrf_token: str = Form("")):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        reject_payment(payment_id, admin_id=user["id"], notes=notes.strip() or None)
    except BillingError as e:
        return _error(e)
    return RedirectResponse(url="/admin/payments?status=pending", status_code=303)


# -------- Withdrawals --------


@router.get("/withdrawals", response_class=HTMLResponse)
def withdrawals(request: Request, status: str = "pending"):
    user, denied = require_admin(request)
    if denied:
        return denied

    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    rows = list_withdrawals(status=status)

    rows_html = ""
    for w in rows:
        if w.get("type") == "subscription":
            target = esc(w.get("plan_name") or "Subscription")
        else:
            target = f"{esc(w.get('card_number'))}<div class='muted'>{esc(w.get('card_holder'))}</div>"
        actions = ""
        if w.get("status") == "pending":
            actions = f"""
            <form method="post" action="/admin/withdrawals/{w['id']}/approve" style="display:inline">
              {_csrf_field(csrf_token)}
              <input type="text" name="notes" placeholder="Note (optional)" maxlength="500" />
              <button type="submit">Approve</button>
            </form>
            <form method="post" action="/admin/withdrawals/{w['id']}/reject" style="display:inline">
              {_csrf_field(csrf_token)}
              <input type="text" name="notes" placeholder="Reason" maxlength="500" />
              <button type="submit" class="danger">Reject</button>
            </form>
            """
        rows_html += f"""
        <tr>
          <td>{w['id']}</td>
          <td>{esc(w.get('email'))}<div class="muted">Earnings: {money(w.get('referral_earnings'))}</div></td>
          <td>{esc(w.get('type'))}</td>
          <td>{money(w.get('amount'))}</td>
          <td>{target}</td>
          <td>{esc(w.get('status'))}</td>
          <td>{esc(format_dt(w.get('created_at')))}</td>
          <td>{actions}</td>
        </tr>
        """
    if not rows:
        rows_html = '<tr><td colspan="8">No withdrawals match.</td></tr>'

    body = f"""
    <div class="card">
      <form method="get" action="/admin/withdrawals">
        <label>Status</label>
        <select name="status">{_options(WITHDRAWAL_STATUSES, status)}</select>
        <button type="submit">Filter</button>
      </form>
      <table>
        <thead><tr><th>ID</th><th>User</th><th>Type</th><th>Amount</th><th>Payout</th><th>Status</th><th>Created</th><th>Actions</th></tr></thead>
        <tbody>{rows_html}</tbody>
      </table>
    </div>
    """
    return _admin_page(request, "Referral withdrawals", body, user, csrf_token)


@router.post("/withdrawals/{withdrawal_id}/approve")
def approve_withdrawal_route(request: Request, withdrawal_id: int, notes: str = Form("", max_length=500), csrf_token: str = Form("")):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        approve_withdrawal(withdrawal_id, admin_id=user["id"], notes=notes.strip() or None)
    except BillingError as e:
        return _error(e)
    return RedirectResponse(url="/admin/withdrawals?status=pending", status_code=303)


@router.post("/withdrawals/{withdrawal_id}/reject")
def reject_withdrawal_route(request: Request, withdrawal_id: int, notes: str = Form("", max_length=500), csrf_token: str = Form("")):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        reject_withdrawal(withdrawal_id, admin_id=user["id"], notes=notes.strip() or None)
    except BillingError as e:
        return _error(e)
    return RedirectResponse(url="/admin/withdrawals?status=pending", status_code=303)


# -------- Reminders --------


def _reminder_filters(request: Request) -> dict:
    qp = request.query_params
    return {
        "reminder_type": qp.get("type") or None,
        "subscription_type": qp.get("subscription_type") or None,
        "date_from": qp.get("date_from") or None,
        "date_to": qp.get("date_to") or None,
    }


@router.get("/reminders", response_class=HTMLResponse)
def reminders(request: Request, page: int = 0):
    user, denied = require_admin(request)
    if denied:
        return denied

    filters = _reminder_filters(request)
    page = max(0, page)
    rows, total = list_reminders(**filters, page=page, page_size=PAGE_SIZE)
    summary = reminder_summary()

    rows_html = ""
    for r in rows:
        days = days_until_expiry(r.get("expires_at"), r.get("sent_at"))
        rows_html += f"""
        <tr>
          <td>{esc(r.get('email'))}<div class="muted">{esc(r.get('full_name'))}</div></td>
          <td>{esc(PLAN_LABELS.get(r.get('subscription_type'), r.get('subscription_type')))}</td>
          <td>{esc(_REMINDER_LABELS.get(r.get('reminder_type'), r.get('reminder_type')))}</td>
          <td>{esc(format_dt(r.get('expires_at')))}</td>
          <td>{esc(format_dt(r.get('sent_at')))}</td>
          <td>{'' if days is None else days}</td>
        </tr>
        """
    if not rows:
        rows_html = '<tr><td colspan="6">No reminders sent yet.</td></tr>'

    query = {
        "type": filters["reminder_type"] or "",
        "subscription_type": filters["subscription_type"] or "",
        "date_from": filters["date_from"] or "",
        "date_to": filters["date_to"] or "",
    }
    pages = max(1, (total + PAGE_SIZE - 1) // PAGE_SIZE)
    pager = ""
    if page > 0:
        pager += f'<a href="/admin/reminders?{urlencode({**query, "page": page - 1})}">Previous</a> '
    if page + 1 < pages:
        pager += f'<a href="/admin/reminders?{urlencode({**query, "page": page + 1})}">Next</a>'

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Sent today</div><div class="value">{summary['sent_today']}</div></div>
      <div class="stat"><div class="label">This week</div><div class="value">{summary['sent_this_week']}</div></div>
      <div class="stat"><div class="label">7 days</div><div class="value">{summary['count_7_days']}</div></div>
      <div class="stat"><div class="label">3 days</div><div class="value">{summary['count_3_days']}</div></div>
      <div class="stat"><div class="label">1 day</div><div class="value">{summary['count_1_day']}</div></div>
      <div class="stat"><div class="label">Expired</div><div class="value">{summary['count_expired']}</div></div>
    </div>
    <div class="card">
      <form method="get" action="/admin/reminders">
        <label>Reminder type</label>
        <select name="type">{_options(REMINDER_TYPES, filters['reminder_type'], _REMINDER_LABELS)}</select>
        <label>Subscription type</label>
        <select name="subscription_type">{_options([t for t in SUBSCRIPTION_TYPES if t != 'free'], filters['subscription_type'], PLAN_LABELS)}</select>
        <label>From</label>
        <input type="date" name="date_from" value="{esc(filters['date_from'])}" />
        <label>To</label>
        <input type="date" name="date_to" value="{esc(filters['date_to'])}" />
        <button type="submit">Filter</button>
      </form>
      <p class="muted">{total} reminders · page {page + 1} of {pages} · <a href="/admin/reminders.csv?{urlencode(query)}">Export CSV</a></p>
      <table>
        <thead><tr><th>User</th><th>Plan</th><th>Reminder</th><th>Expires</th><th>Sent</th><th>Days before expiry</th></tr></thead>
        <tbody>{rows_html}</tbody>
      </table>
      <p>{pager}</p>
    </div>
    """
    return render_page("Subscription reminders", body, user=user)


@router.get("/reminders.csv")
def reminders_csv(request: Request):
    _, denied = require_admin(request)
    if denied:
        return denied
    content = export_reminders_csv(**_reminder_filters(request))
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="subscription-reminders.csv"'},
    )


# -------- Users --------


@router.get("/users", response_class=HTMLResponse)
def users(request: Request, q: str = ""):
    user, denied = require_admin(request)
    if denied:
        return denied

    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    rows = list_users(search=q)

    rows_html = ""
    for u in rows:
        blocked = not u.get("active")
        toggle = ""
        if u["id"] != user["id"]:
            label = "Unblock" if blocked else "Block"
            toggle = f"""
            <form method="post" action="/admin/users/{u['id']}/toggle" style="display:inline">
              {_csrf_field(csrf_token)}
              <button type="submit" class="{'' if blocked else 'danger'}">{label}</button>
            </form>
            """
        rows_html += f"""
        <tr>
          <td>{u['id']}</td>
          <td>{esc(u.get('email'))}<div class="muted">{esc(u.get('full_name'))}</div></td>
          <td>{esc(u.get('role'))}</td>
          <td>{esc(PLAN_LABELS.get(u.get('subscription_type'), u.get('subscription_type')))}</td>
          <td>{esc(format_dt(u.get('subscription_expires_at')))}</td>
          <td>{esc(u.get('referral_code'))} ({u.get('referred_count', 0)})</td>
          <td>{money(u.get('referral_earnings'))}</td>
          <td>{'Blocked' if blocked else 'Active'}</td>
          <td>{toggle}</td>
        </tr>
        """
    if not rows:
        rows_html = '<tr><td colspan="9">No users match.</td></tr>'

    body = f"""
    <div class="card">
      <form method="get" action="/admin/users">
        <label>Search email or name</label>
        <input type="text" name="q" value="{esc(q)}" maxlength="100" />
        <button type="submit">Search</button>
      </form>
      <table>
        <thead><tr><th>ID</th><th>User</th><th>Role</th><th>Plan</th><th>Expires</th><th>Referral code</th><th>Earnings</th><th>Status</th><th></th></tr></thead>
        <tbody>{rows_html}</tbody>
      </table>
    </div>
    """
    return _admin_page(request, "Users", body, user, csrf_token)


@router.post("/users/{user_id}/toggle")
def toggle_user(request: Request, user_id: int, csrf_token: str = Form("")):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if user_id == user["id"]:
        return HTMLResponse("You cannot block your own account.", status_code=400)

    target = get_user_by_id(user_id)
    if not target:
        return HTMLResponse("User not found", status_code=404)
    active = not target.get("active")
    set_user_active(user_id, active)
    if not active:
        delete_sessions_for_user(user_id)
    log.info("User active flag toggled", extra={"user_id": user_id, "active": active, "admin_id": user["id"]})
    return RedirectResponse(url="/admin/users", status_code=303)


# -------- Plans --------


def _render_plans(request: Request, user: dict, error: str | None = None, status_code: int = 200):
    csrf_token = issue_csrf_token(request.cookies.get(CSRF_COOKIE_NAME))
    rows_html = ""
    for p in list_plans(active_only=False):
        label = "Disable" if p.get("is_active") else "Enable"
        rows_html += f"""
        <tr>
          <td>{p['id']}</td>
          <td>{esc(p.get('name'))}<div class="muted">{esc(p.get('slug'))}</div></td>
          <td>{esc(PLAN_LABELS.get(p.get('subscription_type'), p.get('subscription_type')))}</td>
          <td>{money(p.get('price'))}</td>
          <td>{p.get('duration_days') or 'Unlimited'}</td>
          <td>{'Active' if p.get('is_active') else 'Hidden'}</td>
          <td>
            <form method="post" action="/admin/plans/{p['id']}/toggle" style="display:inline">
              {_csrf_field(csrf_token)}
              <input type="hidden" name="active" value="{'0' if p.get('is_active') else '1'}" />
              <button type="submit">{label}</button>
            </form>
          </td>
        </tr>
        """

    type_options = "".join(
        f'<option value="{t}">{PLAN_LABELS.get(t, t)}</option>' for t in SUBSCRIPTION_TYPES if t != "free"
    )
    body = f"""
    <div class="card">
      <table>
        <thead><tr><th>ID</th><th>Name</th><th>Type</th><th>Price</th><th>Days</th><th>Status</th><th></th></tr></thead>
        <tbody>{rows_html or '<tr><td colspan="7">No plans yet.</td></tr>'}</tbody>
      </table>
    </div>
    <div class="card form-card">
      <h2>New plan</h2>
      {notice(error)}
      <form method="post" action="/admin/plans">
        <label>Name</label><input type="text" name="name" required maxlength="100" />
        <label>Slug</label><input type="text" name="slug" required maxlength="100" />
        <label>Type</label><select name="subscription_type">{type_options}</select>
        <label>Price</label><input type="text" name="price" required maxlength="20" />
        <label>Duration (days, empty for lifetime)</label><input type="text" name="duration_days" maxlength="5" />
        <label>Description</label><input type="text" name="description" maxlength="300" />
        {_csrf_field(csrf_token)}
        <button type="submit">Create plan</button>
      </form>
    </div>
    """
    return _admin_page(request, "Pricing plans", body, user, csrf_token, status_code=status_code)


@router.get("/plans", response_class=HTMLResponse)
def plans(request: Request):
    user, denied = require_admin(request)
    if denied:
        return denied
    return _render_plans(request, user)


@router.post("/plans", response_class=HTMLResponse)
def create_plan_route(
    request: Request,
    name: str = Form(..., max_length=100),
    slug: str = Form(..., max_length=100),
    subscription_type: str = Form(..., max_length=20),
    price: str = Form(..., max_length=20),
    duration_days: str = Form("", max_length=5),
    description: str = Form("", max_length=300),
    csrf_token: str = Form(""),
):
    user, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        price_value = Decimal(price.replace(" ", ""))
    except InvalidOperation:
        return _render_plans(request, user, error="Price must be a number.", status_code=400)

    try:
        days = int(duration_days) if duration_days.strip() else None
        plan_id = create_plan(
            name=name,
            slug=slug,
            price=price_value,
            subscription_type=subscription_type,
            duration_days=days,
            description=description.strip() or None,
        )
    except ValueError as e:
        return _render_plans(request, user, error=str(e) or "Invalid plan values.", status_code=400)

    log.info("Plan created", extra={"plan_id": plan_id, "admin_id": user["id"]})
    return RedirectResponse(url="/admin/plans", status_code=303)


@router.post("/plans/{plan_id}/toggle")
def toggle_plan(request: Request, plan_id: int, active: str = Form("0"), csrf_token: str = Form("")):
    _, denied = require_admin(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if not set_plan_active(plan_id, active == "1"):
        return HTMLResponse("Plan not found", status_code=404)
    return RedirectResponse(url="/admin/plans", status_code=303)
