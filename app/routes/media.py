import logging

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, JSONResponse

from app.auth_utils import get_current_user
from app.media import (
    BUCKETS,
    DEFAULT_BUCKET,
    can_access_media,
    make_signed_url,
    resolve_media_path,
    verify_signature,
)
from core.database import user_has_any_course

log = logging.getLogger("media")

router = APIRouter()


@router.post("/api/media/signed-url")
async def signed_url(request: Request):
    user, _ = get_current_user(request)
    if not user:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
    if not isinstance(payload, dict):
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    file_path = str(payload.get("file_path") or "").strip().lstrip("/")
    bucket = str(payload.get("bucket") or DEFAULT_BUCKET)
    if not file_path:
        return JSONResponse({"error": "file_path required"}, status_code=400)
    if bucket not in BUCKETS or resolve_media_path(bucket, file_path) is None:
        return JSONResponse({"error": "Invalid file location"}, status_code=400)

    enrolled = bucket == "course-materials" and user_has_any_course(user["id"])
    if not can_access_media(user, bucket, enrolled=enrolled, file_path=file_path):
        return JSONResponse({"error": "Access denied"}, status_code=403)

    return JSONResponse(make_signed_url(bucket, file_path))


@router.get("/media/{bucket}/{file_path:path}")
def serve_media(bucket: str, file_path: str, expires: str = "", signature: str = ""):
    if not verify_signature(bucket, file_path, expires, signature):
        return JSONResponse({"error": "Invalid or expired link"}, status_code=403)

    target = resolve_media_path(bucket, file_path)
    if target is None or not target.is_file():
        return JSONResponse({"error": "File not found"}, status_code=404)

    return FileResponse(target, headers={"Cache-Control": "private, max-age=3600"})
