"""
ATOM Portal API
Member self-service, front desk and admin back-office for ATOM Jiu-Jitsu.
"""

import json
import logging
import os

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from atom_portal import __version__
from atom_portal.errors import HTTP_STATUS_CODES, ServiceError, error_payload
from atom_portal.routers import (
    admin,
    auth,
    expenses,
    freeze_requests,
    members,
    notifications,
    profile,
    promotions,
    reservations,
    scan,
    store,
    subscriptions,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _cors_origins():
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


def _session_secret() -> str:
    secret = str(os.getenv("SESSION_SECRET") or "").strip()
    if secret:
        return secret
    env = (os.getenv("ENV") or os.getenv("APP_ENV") or "").strip().lower()
    if env in ("prod", "production"):
        raise RuntimeError("SESSION_SECRET is required in production")
    logger.warning("SESSION_SECRET not set, using an insecure development secret")
    return "atom-dev-session-secret"


# --- Exception handlers ---

async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(error_payload(code), status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(e.get("loc") or []), "msg": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(error_payload("INVALID_INPUT", details), status_code=422)


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(error_payload("DATABASE_ERROR"), status_code=500)


# --- Middleware ---

async def ensure_ok_envelope(request: Request, call_next):
    """Guarantee an ``ok`` key on JSON object responses under /api."""
    response = await call_next(request)
    content_type = (response.headers.get("content-type") or "").lower()
    if not request.url.path.startswith("/api/") or "application/json" not in content_type:
        return response

    body = b""
    async for chunk in response.body_iterator:
        body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
    try:
        payload = json.loads(body.decode("utf-8")) if body else None
    except ValueError:
        payload = None

    if isinstance(payload, dict) and "ok" not in payload:
        payload["ok"] = response.status_code < 400
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

    wrapped = Response(content=body, status_code=response.status_code)
    wrapped.raw_headers = [(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"]
    wrapped.headers["content-length"] = str(len(body))
    return wrapped


def create_app() -> FastAPI:
    app = FastAPI(title="ATOM Portal API", version=__version__)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    app.middleware("http")(ensure_ok_envelope)
    app.add_middleware(
        SessionMiddleware,
        secret_key=_session_secret(),
        https_only=os.getenv("SESSION_HTTPS_ONLY", "false").strip().lower() in ("1", "true", "yes", "on"),
        same_site="lax",
        session_cookie=os.getenv("SESSION_COOKIE", "atom_session"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(members.router)
    app.include_router(profile.router)
    app.include_router(subscriptions.router)
    app.include_router(scan.router)
    app.include_router(store.router)
    app.include_router(notifications.router)
    app.include_router(freeze_requests.router)
    app.include_router(promotions.router)
    app.include_router(expenses.router)
    app.include_router(reservations.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
