"""
Audit log storage re-exports.
"""
from core.db.audit.audit_store import list_audit_entries, write_audit

__all__ = ["list_audit_entries", "write_audit"]
