"""
Outgoing email: SMTP delivery and message templates.
"""
from core.notifications.mailer import send_html_email, send_text_email
from core.notifications.templates import (
    display_name,
    format_amount,
    payment_result_email,
    reminder_email,
)

__all__ = [
    "send_html_email",
    "send_text_email",
    "display_name",
    "format_amount",
    "payment_result_email",
    "reminder_email",
]
