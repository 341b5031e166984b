"""
ASGI app for the marketplace site: public pages, accounts, the admin
back-office, protected media and the /internal cron hooks.

  uvicorn app.api:app
"""
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from app.routes import admin, auth, dashboard, internal, media, public
from core.database import init_db

# Loaded before anything reads os.getenv at request time; override so an edited .env wins on restart.
load_dotenv(override=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("api")

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; img-src 'self' data:; media-src 'self'; "
    "style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
    "font-src 'self' data:; connect-src 'self';"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("Database ready", extra={"site": os.getenv("SITE_NAME", "MPBS")})
    yield


app = FastAPI(title="MPBS marketplace", lifespan=lifespan)

for module in (public, auth, dashboard, admin, media, internal):
    app.include_router(module.router)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
    return response
