"""
Brew-Me-In API - café chat and introductions.

FastAPI application with rate limiting, spam moderation and interest-based
pokes between patrons.
"""

import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from app.config import settings, validate_security_settings
from app.database import init_db
from app.errors import AppError, RateLimitedError
from app.jobs.poke_expiry import poke_expiry_loop
from app.middleware.rate_limit import limiter
from app.redis_client import close_redis
from app.routers.admin import router as admin_router
from app.routers.channels import router as channels_router
from app.routers.chat import router as chat_router
from app.routers.inbox import router as inbox_router
from app.routers.pokes import router as pokes_router
from app.routers.rate_limits import router as rate_limits_router
from app.routers.spam import router as spam_router
from app.routers.users import router as users_router
from app.schemas.common import ErrorBody, ErrorResponse
from app.services.spam import ProfanityFilter

# Import models to register them with Base.metadata
from app.models import APIKey, User, UserRole  # noqa: F401

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    validate_security_settings()
    await init_db()

    sweeper = None
    if settings.poke_expiry_job_enabled:
        sweeper = asyncio.create_task(
            poke_expiry_loop(settings.poke_expiry_interval_seconds), name="poke-expiry"
        )
    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await close_redis()


app = FastAPI(
    title="Brew-Me-In API",
    description="Café chat with rate limiting, spam moderation and pokes",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter state
app.state.limiter = limiter

# Mutable at runtime through the admin endpoints
app.state.profanity_filter = ProfanityFilter(settings.profanity_word_list)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users_router)
app.include_router(chat_router)
app.include_router(pokes_router)
app.include_router(channels_router)
app.include_router(inbox_router)
app.include_router(rate_limits_router)
app.include_router(spam_router)
app.include_router(admin_router)


# --- Middleware ---


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add a unique request ID to each request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception Handlers ---


def _error_response(
    request: Request,
    status_code: int,
    error: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    body = ErrorResponse(
        error=ErrorBody(
            code=error["code"],
            message=error["message"],
            request_id=request_id,
            details=error.get("details"),
        )
    ).model_dump(mode="json")
    if body["error"]["details"] is None:
        del body["error"]["details"]
    headers = dict(headers or {})
    if request_id:
        # Exception responses can bypass the request-id middleware
        headers["X-Request-ID"] = request_id
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _sanitize_error_detail(error: dict[str, Any]) -> dict[str, Any]:
    """Sanitize Pydantic error detail to be JSON-serializable."""
    sanitized = {}
    for key, value in error.items():
        if key == "ctx":
            # Context may hold exception instances
            sanitized[key] = {k: str(v) for k, v in value.items()} if isinstance(value, dict) else str(value)
        elif key == "loc":
            sanitized[key] = [str(loc) for loc in value]
        elif key == "url":
            continue
        else:
            sanitized[key] = value
    return sanitized


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render categorized service errors."""
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.error("request failed code=%s: %s", exc.code, exc.message)
    return _error_response(request, exc.status_code, exc.to_dict(), headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap HTTPException details (auth failures, unknown routes) in the envelope."""
    detail = exc.detail
    if isinstance(detail, dict) and isinstance(detail.get("error"), dict):
        error = detail["error"]
    else:
        error = {"code": f"HTTP_{exc.status_code}", "message": str(detail)}
    return _error_response(request, exc.status_code, error, exc.headers)


@app.exception_handler(RateLimitExceeded)
async def ip_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Per-IP limits on the public check endpoints."""
    retry_after = exc.limit.limit.get_expiry()
    return _error_response(
        request,
        status.HTTP_429_TOO_MANY_REQUESTS,
        {
            "code": "RATE_LIMIT_EXCEEDED",
            "message": f"Rate limit exceeded: {exc.detail}",
            "details": {"retry_after": retry_after},
        },
        {"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with consistent error format."""
    errors = [_sanitize_error_detail(e) for e in exc.errors()]
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{field}: {msg}" if field else msg
    else:
        message = "Validation error"

    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"code": "VALIDATION_ERROR", "message": message, "details": errors},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent error format."""
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
    )


# --- Health Check ---


@app.get("/api/v1/health", tags=["System"])
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Returns 200 OK if the API is running.
    """
    return {"success": True, "data": {"status": "healthy"}}
