"""
Subscription reminder history re-exports.
"""
from core.db.reminders.reminders_store import (
    PAGE_SIZE,
    REMINDER_TYPES,
    get_sent_reminder_keys,
    list_reminders,
    record_reminder,
    reminder_summary,
)

__all__ = [
    "PAGE_SIZE",
    "REMINDER_TYPES",
    "get_sent_reminder_keys",
    "list_reminders",
    "record_reminder",
    "reminder_summary",
]
