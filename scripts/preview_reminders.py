"""
List the subscription reminders the worker would send right now.
Nothing is emailed or logged unless --send-test is given.

Usage:
  python -m scripts.preview_reminders
  python -m scripts.preview_reminders --send-test you@example.com   # check SMTP settings
"""
from __future__ import annotations

import argparse

from dotenv import load_dotenv

from core.notifications import send_text_email
from worker.lifecycle import get_subscription_reminders


def main():
    load_dotenv(override=True)
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--send-test", metavar="EMAIL", help="send a plain test email to this address")
    args = parser.parse_args()

    if args.send_test:
        send_text_email(args.send_test, "Test email", "SMTP settings work. Reminder emails can be delivered.")
        print(f"Test email sent to {args.send_test}")
        return

    due = get_subscription_reminders()
    if not due:
        print("No reminders due.")
        return

    print(f"{len(due)} reminder(s) due:")
    for r in due:
        print(
            f"  user={r['user_id']} "
            f"email={r['email']} "
            f"type={r['reminder_type']} "
            f"plan={r['subscription_type']} "
            f"expires={r['expires_at']}"
        )


if __name__ == "__main__":
    main()
