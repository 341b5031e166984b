import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from app.auth_utils import get_current_user
from app.layout import esc, money, render_page
from app.sitemap import build_sitemap
from core.billing.plans import PLAN_LABELS
from core.database import (
    get_active_categories,
    get_published_lessons,
    get_published_prompts,
    list_plans,
    ping,
)
from core.notifications.templates import SITE_NAME

log = logging.getLogger("public")

router = APIRouter()

_LEGAL_PAGES = {
    "terms": (
        "Terms of use",
        "By using the site you agree to use prompts and course materials for your own work only. "
        "Materials may not be resold or redistributed.",
    ),
    "privacy": (
        "Privacy",
        "We store your email, name, phone and payment receipts only to provide access to purchased content. "
        "We never sell personal data.",
    ),
    "payment-terms": (
        "Payment terms",
        "Payments are made by card or bank transfer and confirmed manually after the receipt is reviewed, "
        "usually within one business day. Subscriptions are extended from the current expiry date when renewed early.",
    ),
}


@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    user, _ = get_current_user(request)
    plan_cards = ""
    for p in list_plans(active_only=True):
        days = f"{p['duration_days']} days" if p.get("duration_days") else "Forever"
        plan_cards += f"""
        <div class="stat">
          <div class="label">{esc(PLAN_LABELS.get(p.get('subscription_type'), p.get('subscription_type')))}</div>
          <div class="value">{money(p.get('price'))}</div>
          <div class="muted">{esc(p.get('name'))} · {esc(days)}</div>
        </div>
        """

    cta = '<a href="/payment">Choose a plan</a>' if user else '<a href="/register">Create a free account</a>'
    body = f"""
    <div class="card">
      <h2>Prompts, lessons and courses</h2>
      <p>Ready-made prompts and step-by-step lessons. {cta}</p>
    </div>
    <div class="stats">{plan_cards or "<p class='muted'>Plans are coming soon.</p>"}</div>
    """
    return render_page(SITE_NAME, body, user=user)


def _legal_page(request: Request, page: str):
    user, _ = get_current_user(request)
    title, text = _LEGAL_PAGES[page]
    return render_page(title, f'<div class="card"><p>{esc(text)}</p></div>', user=user)


@router.get("/terms", response_class=HTMLResponse)
def terms(request: Request):
    return _legal_page(request, "terms")


@router.get("/privacy", response_class=HTMLResponse)
def privacy(request: Request):
    return _legal_page(request, "privacy")


@router.get("/payment-terms", response_class=HTMLResponse)
def payment_terms(request: Request):
    return _legal_page(request, "payment-terms")


@router.get("/sitemap.xml")
def sitemap():
    try:
        xml = build_sitemap(get_published_prompts(), get_active_categories(), get_published_lessons())
    except Exception as e:
        log.exception("Sitemap generation failed", extra={"error": str(e)})
        return JSONResponse({"error": "Failed to generate sitemap"}, status_code=500)
    return Response(
        content=xml,
        media_type="application/xml; charset=utf-8",
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.get("/health")
def health():
    """
    Basic health check for the app.
    """
    try:
        ping()
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "detail": str(e)}


@router.get("/favicon.ico")
def favicon():
    # Return empty 204 to avoid log noise for missing favicon
    return Response(status_code=204)
