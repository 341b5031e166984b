"""
Endpoints for an external scheduler (cron) to trigger the lifecycle batch.
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.security import has_cron_secret
from worker.lifecycle import expire_subscriptions, run_reminders

log = logging.getLogger("internal")

router = APIRouter(prefix="/internal")


def _unauthorized() -> JSONResponse:
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


@router.post("/expire-subscriptions")
def expire_subscriptions_endpoint(request: Request):
    if not has_cron_secret(request):
        return _unauthorized()
    try:
        result = expire_subscriptions()
    except Exception as e:
        log.exception("Expiry run failed", extra={"error": str(e)})
        return JSONResponse({"success": False, "error": "Expiry run failed"}, status_code=500)
    return JSONResponse({"success": True, **result})


@router.post("/subscription-reminders")
def subscription_reminders_endpoint(request: Request):
    if not has_cron_secret(request):
        return _unauthorized()
    try:
        result = run_reminders()
    except Exception as e:
        log.exception("Reminder run failed", extra={"error": str(e)})
        return JSONResponse({"success": False, "error": "Reminder run failed"}, status_code=500)
    return JSONResponse({"success": True, **result})
