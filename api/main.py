"""
api/main.py -- FastAPI application entry point for HarborDesk Identity.

Exposes the auth core (auth/) over HTTP for the HarborDesk web and mobile
clients.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds one SQLAlchemy engine and hangs the stores, the auditor, the
service and the gate off app.state; shutdown disposes the engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.activity import router as activity_router
from api.routes.v1.auth import router as auth_router
from auth.audit import ActivityAuditor
from auth.dependencies import get_current_identity
from auth.errors import AuthError
from auth.gate import AuthGate
from auth.models import Identity
from auth.schema import create_auth_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("harbordesk.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the auth core onto app.state for the lifetime of the server.

    Everything before yield runs on startup, everything after on shutdown.
    The stores share one engine so they share one connection pool.
    """
    logger.info("HarborDesk Identity starting up")
    engine = create_auth_engine(_settings.database_url)
    user_store = UserStore(engine)
    session_store = SessionStore(engine)
    auditor = ActivityAuditor(engine)

    app.state.engine = engine
    app.state.user_store = user_store
    app.state.session_store = session_store
    app.state.auditor = auditor
    app.state.auth_service = AuthService(user_store, session_store, auditor)
    app.state.auth_gate = AuthGate(user_store, session_store)
    if not user_store.has_users():
        logger.warning("No users exist yet -- run scripts/seed.py to create the catalogue and an admin")
    logger.info("Auth initialized")

    yield

    engine.dispose()
    logger.info("HarborDesk Identity shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="HarborDesk Identity API",
    description="Authentication, sessions, roles and permissions for the HarborDesk shipping platform.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

_allowed_hosts = ["localhost", "127.0.0.1", "*.localhost"]
if _settings.debug:
    # Starlette's TestClient sends Host: testserver.
    _allowed_hosts.append("testserver")

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    # The refresh cookie has to cross from the SPA origin.
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    auth = getattr(request.state, "auth", None)
    logger.info(
        "%s %s -> %d in %.1fms (client=%s user=%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
        auth.identity.user_id if auth else "-",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(activity_router, prefix="/api/v1", tags=["Activity Logs"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(identity: Identity = Depends(get_current_identity)):
    """Swagger UI -- requires a live session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="HarborDesk Identity API")


@app.get("/redoc", include_in_schema=False)
async def redoc(identity: Identity = Depends(get_current_identity)):
    """ReDoc UI -- requires a live session."""
    return get_redoc_html(openapi_url="/openapi.json", title="HarborDesk Identity API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves as {"error": {code, message, detail}}. A 401 also carries
# WWW-Authenticate so bearer clients know to log in again.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail=None,
    headers: dict | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    response = JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)
    if status_code == 401:
        response.headers.setdefault("WWW-Authenticate", "Bearer")
    return response


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Failures raised by the auth core keep their own status and code."""
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.detail or None)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    return _error_response(
        429,
        "rate_limited",
        "Too many requests.",
        str(exc),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 listing each failing field; rejected input values are not echoed back."""
    fields = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    return _error_response(422, "validation_error", "Request validation failed.", fields)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """auth/dependencies.py raises HTTPException(detail=AuthError.to_dict()); a dict detail passes through."""
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return _error_response(exc.status_code, headers=headers, **exc.detail)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failures, database outages included. Details go to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router state.
# No rate limit -- load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    components = {"app": "ok"}
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components=components)
