"""
Protected media: time-limited signed URLs over files under MEDIA_ROOT,
plus receipt uploads for manual payments.

A URL is signed with HMAC-SHA256 over "bucket/path:expires" and is valid
until `expires` (unix seconds).
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
import time
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote

from core.billing.plans import has_active_subscription
from core.errors import ValidationFailed

log = logging.getLogger("media")

SIGNED_URL_TTL_SECONDS = 3600
DEFAULT_BUCKET = "lesson-videos"
BUCKETS = ("lesson-videos", "course-materials", "prompt-media", "receipts")
RECEIPTS_BUCKET = "receipts"

MAX_RECEIPT_BYTES = 5 * 1024 * 1024
RECEIPT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}


def media_root() -> Path:
    return Path(os.getenv("MEDIA_ROOT") or "media").resolve()


def _signing_key() -> bytes:
    key = os.getenv("MEDIA_SIGNING_KEY")
    if not key:
        raise RuntimeError("MEDIA_SIGNING_KEY must be set to serve protected media.")
    return key.encode()


def sign(bucket: str, file_path: str, expires: int) -> str:
    message = f"{bucket}/{file_path}:{expires}".encode()
    return hmac.new(_signing_key(), message, hashlib.sha256).hexdigest()


def make_signed_url(bucket: str, file_path: str, now: float | None = None) -> Dict:
    """Return {"signed_url", "expires"} for a file in a bucket."""
    expires = int(now if now is not None else time.time()) + SIGNED_URL_TTL_SECONDS
    signature = sign(bucket, file_path, expires)
    url = f"/media/{bucket}/{quote(file_path)}?expires={expires}&signature={signature}"
    return {"signed_url": url, "expires": expires}


def verify_signature(bucket: str, file_path: str, expires, signature: str | None, now: float | None = None) -> bool:
    try:
        expires_int = int(expires)
    except (TypeError, ValueError):
        return False
    if expires_int < int(now if now is not None else time.time()):
        return False
    if not signature:
        return False
    return hmac.compare_digest(sign(bucket, file_path, expires_int), signature)


def path_segments(file_path: str) -> Optional[List[str]]:
    """Split a bucket-relative path; None if any segment is empty, "." or ".."."""
    parts = file_path.split("/")
    if any(p in ("", ".", "..") for p in parts):
        return None
    return parts


def resolve_media_path(bucket: str, file_path: str) -> Optional[Path]:
    """Absolute path of the file inside its bucket, or None for dot segments or an escape."""
    if bucket not in BUCKETS or not file_path or "\x00" in file_path or "\\" in file_path:
        return None
    if path_segments(file_path) is None:
        return None
    bucket_dir = (media_root() / bucket).resolve()
    target = (bucket_dir / file_path).resolve()
    if not target.is_relative_to(bucket_dir):
        return None
    return target


def can_access_media(user: Dict | None, bucket: str, enrolled: bool = False, file_path: str = "") -> bool:
    """
    Admins see everything. Receipts are visible to their uploader only.
    Otherwise a paid, unexpired subscription is required, except that
    course materials are open to anyone enrolled in a course.
    """
    if not user:
        return False
    if user.get("role") == "admin":
        return True
    if bucket == RECEIPTS_BUCKET:
        # Owner folder is the first segment, so dot segments are never trusted here
        parts = path_segments(file_path)
        return bool(parts) and len(parts) > 1 and parts[0] == str(user["id"])
    if has_active_subscription(user):
        return True
    return bucket == "course-materials" and enrolled


def save_receipt(user_id: int, content_type: str | None, data: bytes) -> str:
    """
    Store an uploaded receipt image and return its bucket-relative path
    ("<user_id>/<random><ext>").
    """
    ext = RECEIPT_TYPES.get((content_type or "").lower())
    if not ext:
        raise ValidationFailed("Receipt must be an image (JPG, PNG, WEBP or HEIC).")
    if not data:
        raise ValidationFailed("Receipt file is empty.")
    if len(data) > MAX_RECEIPT_BYTES:
        raise ValidationFailed("Receipt must be 5 MB or smaller.")

    rel_path = f"{user_id}/{secrets.token_hex(12)}{ext}"
    target = media_root() / RECEIPTS_BUCKET / rel_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    log.info("Receipt stored", extra={"user_id": user_id, "path": rel_path, "size": len(data)})
    return rel_path


__all__ = [
    "SIGNED_URL_TTL_SECONDS",
    "DEFAULT_BUCKET",
    "BUCKETS",
    "RECEIPTS_BUCKET",
    "MAX_RECEIPT_BYTES",
    "media_root",
    "sign",
    "make_signed_url",
    "verify_signature",
    "path_segments",
    "resolve_media_path",
    "can_access_media",
    "save_receipt",
]
