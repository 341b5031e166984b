"""
Append-only audit log of admin and batch actions.
"""
from __future__ import annotations

import json
from typing import Dict, List

from core.db.base import get_conn, utcnow_iso


def write_audit(
    cur,
    *,
    actor_user_id: int | None,
    action: str,
    table_name: str | None = None,
    record_id: int | None = None,
    details: Dict | None = None,
) -> None:
    """Insert an audit row using the caller's cursor so it commits with the change it describes."""
    cur.execute(
        """
        INSERT INTO audit_log (actor_user_id, action, table_name, record_id, details, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            actor_user_id,
            action,
            table_name,
            record_id,
            json.dumps(details, default=str) if details is not None else None,
            utcnow_iso(),
        ),
    )


def list_audit_entries(limit: int = 100, action: str | None = None) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    if action:
        cur.execute(
            "SELECT * FROM audit_log WHERE action = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (action, int(limit)),
        )
    else:
        cur.execute("SELECT * FROM audit_log ORDER BY created_at DESC, id DESC LIMIT ?", (int(limit),))
    rows = cur.fetchall()
    conn.close()
    entries = []
    for r in rows:
        entry = dict(r)
        if entry.get("details"):
            entry["details"] = json.loads(entry["details"])
        entries.append(entry)
    return entries


__all__ = ["write_audit", "list_audit_entries"]
