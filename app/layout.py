"""
Shared HTML layout and small rendering helpers.
"""
import html
import os
from datetime import datetime, timezone

from fastapi.responses import HTMLResponse

from core.notifications.templates import SITE_NAME, format_amount


def esc(value) -> str:
    return html.escape("" if value is None else str(value), quote=True)


def format_dt(dt_str: str | None) -> str:
    """Render ISO timestamp as local human-readable string."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(dt_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone().strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return dt_str


def money(amount) -> str:
    return esc(format_amount(amount))


def notice(message: str | None, kind: str = "error") -> str:
    if not message:
        return ""
    color = "#f97373" if kind == "error" else "#4ade80"
    return f'<p style="color:{color};">{esc(message)}</p>'


def render_page(title: str, body: str, user: dict | None = None, status_code: int = 200) -> HTMLResponse:
    """
    Shared layout: dark background, nav bar, and optional 'signed in as' line.
    """
    if user:
        auth_links = """
          <a href="/dashboard">Dashboard</a>
          <a href="/payment">Plans &amp; payment</a>
          <a href="/logout">Logout</a>
        """
        signed_in_text = f"Signed in as <strong>{esc(user.get('email'))}</strong>"
    else:
        auth_links = """
          <a href="/login">Login</a>
          <a href="/register">Register</a>
        """
        signed_in_text = "Not signed in"

    admin_links = ""
    if user and user.get("role") == "admin":
        admin_links = """
          <a href="/admin">Admin</a>
          <a href="/admin/payments">Payments</a>
          <a href="/admin/withdrawals">Withdrawals</a>
          <a href="/admin/reminders">Reminders</a>
        """

    year = datetime.utcnow().year
    site = esc(os.getenv("SITE_NAME") or SITE_NAME)

    page = f"""
    <!DOCTYPE html>
    <html>
      <head>
        <meta charset="utf-8" />
        <meta name="viewport" content="width=device-width, initial-scale=1" />
        <title>{esc(title)} - {site}</title>
        <style>
          :root {{ color-scheme: dark; }}
          * {{ box-sizing: border-box; }}
          body {{
            font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
            margin: 0;
            background: #0b1020;
            color: #e5e7eb;
          }}
          .page {{ max-width: 1080px; margin: 0 auto; padding: 1.5rem 1rem 3rem; }}
          header {{
            display: flex;
            justify-content: space-between;
            align-items: center;
            gap: 1rem;
            flex-wrap: wrap;
            padding: 0.75rem 1rem;
            border: 1px solid #1f2937;
            border-radius: 0.75rem;
            background: linear-gradient(90deg, rgba(129,140,248,0.10), rgba(56,189,248,0.06));
          }}
          header h1 {{ font-size: 1.3rem; margin: 0; }}
          nav {{ display: flex; gap: 0.5rem; flex-wrap: wrap; }}
          nav a {{
            color: #e5e7eb;
            text-decoration: none;
            padding: 6px 10px;
            border-radius: 8px;
            background: rgba(255,255,255,0.04);
          }}
          nav a:hover {{ color: #818cf8; }}
          .signed-in, .muted {{ color: #9ca3af; font-size: 0.85rem; }}
          main {{ margin-top: 1.25rem; }}
          a {{ color: #818cf8; }}
          .card {{
            border: 1px solid #1f2937;
            border-radius: 0.75rem;
            padding: 1rem 1.25rem;
            margin-bottom: 1rem;
          }}
          .form-card {{ max-width: 640px; }}
          label {{ display: block; margin-top: 0.9rem; font-size: 0.95rem; }}
          input:not([type="checkbox"]):not([type="radio"]), select, textarea {{
            width: 100%;
            padding: 0.5rem;
            margin-top: 0.25rem;
            border-radius: 0.375rem;
            border: 1px solid #4b5563;
            background: #0b1020;
            color: #e5e7eb;
          }}
          button {{
            margin-top: 1rem;
            padding: 0.55rem 1.1rem;
            border-radius: 0.5rem;
            border: none;
            background: #818cf8;
            color: #0b1020;
            font-weight: 600;
            cursor: pointer;
          }}
          button.danger {{ background: #f87171; }}
          table {{ width: 100%; border-collapse: collapse; margin-top: 1rem; font-size: 0.9rem; }}
          th, td {{ border: 1px solid #1f2937; padding: 0.4rem 0.6rem; vertical-align: top; text-align: left; }}
          th {{ background: #111827; }}
          .stats {{ display: flex; gap: 0.75rem; flex-wrap: wrap; margin-bottom: 1rem; }}
          .stat {{ flex: 0 0 160px; padding: 0.6rem 0.8rem; border: 1px solid #1f2937; border-radius: 0.75rem; }}
          .stat .label {{ font-size: 0.75rem; color: #9ca3af; }}
          .stat .value {{ font-size: 1.2rem; font-weight: 600; }}
          footer {{ margin-top: 2.5rem; padding: 1rem 0; border-top: 1px solid #1f2937; text-align: center; color: #9ca3af; }}
        </style>
      </head>
      <body>
        <div class="page">
          <header>
            <div>
              <h1>{esc(title)}</h1>
              <div class="signed-in">{signed_in_text}</div>
            </div>
            <nav>
              <a href="/">Home</a>
              {admin_links}
              {auth_links}
            </nav>
          </header>
          <main>
            {body}
          </main>
          <footer>
            <div>(c) {year} {site}. All rights reserved.</div>
            <div><a href="/terms">Terms</a> · <a href="/privacy">Privacy</a> · <a href="/payment-terms">Payment terms</a></div>
          </footer>
        </div>
      </body>
    </html>
    """
    return HTMLResponse(content=page, status_code=status_code)
