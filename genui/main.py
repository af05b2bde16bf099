"""
main.py — genui FastAPI application entry point.

Start with: uvicorn genui.main:app --reload --port 8000
"""
import asyncio
import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mistralai import Mistral
from starlette.exceptions import HTTPException as StarletteHTTPException

from genui.cache import create_redis_pool
from genui.config import settings
from genui.errors import GenerationUnavailableError, SessionNotFoundError
from genui.generation.formatter import CodeFormatter
from genui.generation.retry import RetryPolicy
from genui.sessions.locks import KeyedLock
from genui.sessions.routes import router as sessions_router
from genui.sessions.schemas import ErrorBody, ErrorDetail, ErrorResponse

# ---------------------------------------------------------------------------
# Logging: configured before anything else
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup & shutdown hooks
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      1. Run Alembic migrations (auto-applied — no manual step needed)
      2. Initialize Redis connection pool (None when REDIS_URL is unset)
      3. Mistral client, generation semaphore, retry policy
      4. Per-session locks and the shared formatter
    Shutdown:
      1. Close Redis pool
    """
    # --- 1. Database: run Alembic migrations ---
    package_dir = os.path.dirname(os.path.abspath(__file__))
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        capture_output=True,
        text=True,
        cwd=package_dir,
    )
    if result.returncode != 0:
        logger.error("Alembic migration failed:\n%s", result.stderr)
        raise RuntimeError(f"Alembic migration failed: {result.stderr}")
    msg = result.stdout.strip() or "No pending migrations"
    logger.info("Alembic: %s", msg)

    # --- 2. Redis ---
    app.state.redis = await create_redis_pool()

    # --- 3. Mistral client: singleton for HTTP connection pool reuse ---
    app.state.mistral = Mistral(api_key=settings.mistral_api_key)
    # asyncio.Semaphore MUST be created inside async context (not module level)
    app.state.generation_semaphore = asyncio.Semaphore(settings.generation_concurrency)
    app.state.retry_policy = RetryPolicy(
        max_attempts=settings.generation_max_attempts,
        backoff_base=settings.generation_backoff_base,
    )
    logger.info(
        "Mistral client initialized model=%s concurrency=%d max_attempts=%d",
        settings.mistral_model, settings.generation_concurrency, settings.generation_max_attempts,
    )

    # --- 4. Shared in-process helpers ---
    app.state.session_locks = KeyedLock()
    app.state.formatter = CodeFormatter()

    logger.info("genui v%s starting up", settings.app_version)
    yield

    # --- Shutdown ---
    if app.state.redis is not None:
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    logger.info("genui shutting down")


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="genui API",
    version=settings.app_version,
    description=(
        "Conversational UI component generator. Each chat turn edits a React "
        "component (JSX + CSS) produced by an LLM and keeps it renderable."
    ),
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------
def _make_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build a standard {error: {code, message, details}} response."""
    body = ErrorResponse(
        error=ErrorBody(
            code=code,
            message=message,
            details=[ErrorDetail(**d) for d in details or []],
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ---------------------------------------------------------------------------
# Global exception handlers: registered BEFORE routers
# ---------------------------------------------------------------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Converts Pydantic / FastAPI 422 validation errors to standard format.
    Returns ALL field violations in one response.
    """
    details = []
    for error in exc.errors():
        # Build dot-notation field path, excluding the top-level 'body' loc
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        details.append({"field": field or None, "issue": error["msg"]})
    return _make_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=details,
        status_code=422,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMITED",
    }
    code = code_map.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _make_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(
    request: Request, exc: SessionNotFoundError
) -> JSONResponse:
    """Absent and foreign sessions produce the same 404."""
    return _make_error_response(
        code="NOT_FOUND",
        message="Session not found",
        status_code=404,
    )


@app.exception_handler(GenerationUnavailableError)
async def generation_unavailable_handler(
    request: Request, exc: GenerationUnavailableError
) -> JSONResponse:
    """Upstream details stay in the server log."""
    return _make_error_response(
        code="GENERATION_FAILED",
        message="Server error generating code",
        status_code=500,
    )


@app.exception_handler(ValueError)
async def value_error_handler(
    request: Request, exc: ValueError
) -> JSONResponse:
    """
    Catches explicit ValueError raises from business logic (ValidationFailure).
    Surfaces as 422 VALIDATION_ERROR so the caller understands it's a data issue.
    """
    return _make_error_response(
        code="VALIDATION_ERROR",
        message=str(exc),
        status_code=422,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all for unexpected errors.
    DEBUG=true  → includes exception type & message in details (dev only).
    DEBUG=false → generic message; full traceback logged server-side only.
    """
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=True,
    )
    if settings.debug:
        details = [{"issue": f"{type(exc).__name__}: {exc}"}]
        message = "An unexpected error occurred (debug details included)"
    else:
        details = []
        message = "An unexpected error occurred"
    return _make_error_response(
        code="INTERNAL_ERROR",
        message=message,
        details=details,
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Health endpoint (no auth required)
# ---------------------------------------------------------------------------
@app.get("/api/health", tags=["System"])
async def health_check(request: Request) -> dict:
    return {
        "status": "ok",
        "version": settings.app_version,
        "cache_enabled": getattr(request.app.state, "redis", None) is not None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(sessions_router)
