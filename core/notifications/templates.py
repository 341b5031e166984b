"""
HTML email bodies for payment decisions and subscription reminders.

Every builder returns (subject, html, text). User-supplied values are escaped.
"""
from __future__ import annotations

import html
import os
from decimal import Decimal
from typing import Tuple

from core.billing.plans import PLAN_LABELS, parse_ts

SITE_NAME = os.getenv("SITE_NAME", "MPBS.uz")
CURRENCY = os.getenv("CURRENCY_LABEL", "so'm")

_REMINDER_COPY = {
    "7_days": {
        "subject": "Your subscription ends in 7 days",
        "heading": "Your subscription is ending soon",
        "message": "your <strong>{plan}</strong> subscription ends on <strong>{date}</strong>. Renew early to keep uninterrupted access.",
        "cta": "Renew subscription",
        "path": "/payment",
        "color": "#3b82f6",
    },
    "3_days": {
        "subject": "Your subscription ends in 3 days",
        "heading": "Your subscription is ending soon",
        "message": "your <strong>{plan}</strong> subscription ends on <strong>{date}</strong>. Renew now to keep using premium prompts.",
        "cta": "Renew subscription",
        "path": "/payment",
        "color": "#f59e0b",
    },
    "1_day": {
        "subject": "Your subscription ends tomorrow",
        "heading": "Ends tomorrow!",
        "message": "your <strong>{plan}</strong> subscription ends <strong>tomorrow</strong>. Renew now so you don't lose access to your prompts.",
        "cta": "Renew now",
        "path": "/payment",
        "color": "#ef4444",
    },
    "expired": {
        "subject": "Your subscription has ended",
        "heading": "Your subscription has ended",
        "message": "your <strong>{plan}</strong> subscription has ended. Subscribe again to regain access to premium prompts.",
        "cta": "Subscribe again",
        "path": "/payment",
        "color": "#dc2626",
    },
}


def public_base_url() -> str:
    return (os.getenv("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/")


def format_amount(amount) -> str:
    """99000 -> "99 000 so'm"."""
    value = Decimal(amount or 0)
    whole = f"{value:,.0f}" if value == value.to_integral_value() else f"{value:,.2f}"
    return f"{whole.replace(',', ' ')} {CURRENCY}"


def format_date(value) -> str:
    dt = parse_ts(value)
    return dt.strftime("%d %B %Y") if dt else ""


def display_name(full_name: str | None, email: str) -> str:
    return (full_name or "").strip() or email.split("@")[0]


def _layout(*, heading: str, color: str, body_html: str, cta_text: str, cta_url: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background: {color}; padding: 30px; border-radius: 12px 12px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">{heading}</h1>
      </div>
      <div style="background: #f9fafb; padding: 30px; border-radius: 0 0 12px 12px; border: 1px solid #e5e7eb;">
        {body_html}
        <div style="text-align: center; margin: 24px 0;">
          <a href="{cta_url}" style="display: inline-block; background: #7c3aed; color: white; padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: bold;">
            {cta_text} &rarr;
          </a>
        </div>
        <hr style="margin: 24px 0; border: none; border-top: 1px solid #e5e7eb;">
        <p style="color: #9ca3af; font-size: 12px; margin: 0; text-align: center;">{html.escape(SITE_NAME)} &mdash; AI marketing prompts platform</p>
      </div>
    </div>
    """


def payment_result_email(
    *, approved: bool, user_name: str, item_name: str, amount
) -> Tuple[str, str, str]:
    name = html.escape(user_name)
    item = html.escape(item_name)
    money = html.escape(format_amount(amount))
    base = public_base_url()

    if approved:
        subject = f"Your payment was approved - {SITE_NAME}"
        heading = "Payment approved!"
        lead = "Your payment has been approved."
        tail = "You can now use all premium features."
        cta_text, cta_url, color = "Open dashboard", f"{base}/dashboard", "#7c3aed"
    else:
        subject = f"Your payment was rejected - {SITE_NAME}"
        heading = "Payment rejected"
        lead = "Unfortunately, your payment was rejected."
        tail = "If something went wrong, contact us or submit the payment again."
        cta_text, cta_url, color = "Pay again", f"{base}/payment", "#dc2626"

    body_html = f"""
        <p style="font-size: 16px; color: #374151;">Dear <strong>{name}</strong>,</p>
        <p style="color: #374151;">{lead}</p>
        <div style="background: white; border: 1px solid #e5e7eb; border-radius: 8px; padding: 20px; margin: 20px 0;">
          <p style="margin: 0; color: #6b7280; font-size: 14px;">Purchase:</p>
          <p style="margin: 4px 0 0; font-size: 18px; font-weight: bold; color: #111827;">{item}</p>
          <p style="margin: 8px 0 0; color: #6b7280; font-size: 14px;">Amount: <strong>{money}</strong></p>
        </div>
        <p style="color: #374151;">{tail}</p>
    """
    text = f"Dear {user_name},\n\n{lead}\nPurchase: {item_name}\nAmount: {format_amount(amount)}\n\n{tail}\n{cta_url}\n"
    return subject, _layout(heading=heading, color=color, body_html=body_html, cta_text=cta_text, cta_url=cta_url), text


def reminder_email(
    *, reminder_type: str, user_name: str, subscription_type: str, expires_at
) -> Tuple[str, str, str]:
    copy = _REMINDER_COPY.get(reminder_type)
    base = public_base_url()
    plan = PLAN_LABELS.get(subscription_type, "Monthly")
    if copy is None:
        subject = f"Subscription notice - {SITE_NAME}"
        heading, color, cta_text, cta_url = "Subscription notice", "#7c3aed", "Open dashboard", f"{base}/dashboard"
        message = "here is an update about your subscription."
    else:
        subject = f"{copy['subject']} - {SITE_NAME}"
        heading, color, cta_text = copy["heading"], copy["color"], copy["cta"]
        cta_url = f"{base}{copy['path']}"
        message = copy["message"].format(plan=html.escape(plan), date=html.escape(format_date(expires_at)))

    body_html = f"""
        <p style="font-size: 16px; color: #374151; line-height: 1.6;">Dear <strong>{html.escape(user_name)}</strong>, {message}</p>
    """
    plain = message.replace("<strong>", "").replace("</strong>", "")
    text = f"Dear {user_name}, {html.unescape(plain)}\n\n{cta_text}: {cta_url}\n"
    return subject, _layout(heading=heading, color=color, body_html=body_html, cta_text=cta_text, cta_url=cta_url), text


__all__ = [
    "SITE_NAME",
    "public_base_url",
    "format_amount",
    "format_date",
    "display_name",
    "payment_result_email",
    "reminder_email",
]
