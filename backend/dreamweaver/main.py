"""
DreamWeaver Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires logging, middleware, exception handlers and
       routers; uvicorn serves the module-level `app`
       (uvicorn dreamweaver.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging → GZip/CORS │
    │                                                          │
    │  Routes:                                                 │
    │    /api/sleep-sessions/...   lifecycle + history         │
    │    /api/bedrooms/...         bedroom profiles            │
    │    /health                   probe                       │
    │                                                          │
    │  Exception Handlers:                                     │
    │    ValidationError 400 │ Authentication 401 │ NotFound 404│
    │    Conflict 409 │ RateLimit 429 │ SystemFailure 500       │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation → wait for the database
    Shutdown: dispose the engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dreamweaver import __version__
from dreamweaver.config import settings
from dreamweaver.database import dispose_engine, wait_for_database
from dreamweaver.exceptions import (
    AuthenticationError,
    ConflictError,
    DreamWeaverError,
    NotFoundError,
    RateLimitExceededError,
    SystemFailureError,
    ValidationError,
)
from dreamweaver.middleware.logging import RequestLoggingMiddleware
from dreamweaver.middleware.rate_limit import RateLimitMiddleware
from dreamweaver.middleware.request_id import RequestIDMiddleware, request_id_var
from dreamweaver.routes import bedrooms, health, sleep_sessions

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] dreamweaver.services.session_lifecycle: ...
    Output goes to stdout for the container runtime to collect.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # uvicorn's own access log duplicates dreamweaver.access
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("DreamWeaver Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    try:
        await wait_for_database()
    except Exception as e:
        # Keep serving: /health reports the outage and requests fail with 500
        logger.error("Database unreachable after retries: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("DreamWeaver Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get("")


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the standard error body: {error, message, details?, request_id}."""
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    content["request_id"] = _request_id(request)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map every DreamWeaverError subclass to its HTTP status.

    SystemFailureError (and DatabaseError) never expose their context; it is
    logged server-side with the request ID instead.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return error_response(request, 400, exc.error_kind, exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        logger.warning("[%s] Request validation error: %s", _request_id(request), message)
        return error_response(
            request,
            400,
            ValidationError.error_kind,
            message,
            {
                "errors": [
                    {
                        "loc": [str(part) for part in err.get("loc", ())],
                        "msg": err.get("msg", ""),
                        "type": err.get("type", ""),
                    }
                    for err in errors
                ]
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unknown routes and wrong methods raised by the router itself
        kind = "not_found" if exc.status_code == 404 else "http_error"
        return error_response(
            request, exc.status_code, kind, str(exc.detail), headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(
            request, 401, exc.error_kind, exc.message, headers={"WWW-Authenticate": "Bearer"}
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(request, 404, exc.error_kind, exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.info("[%s] Conflict: %s", _request_id(request), exc.message)
        return error_response(request, 409, exc.error_kind, exc.message, exc.context)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            request,
            429,
            exc.error_kind,
            exc.message,
            {"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(SystemFailureError)
    async def handle_system_failure(request: Request, exc: SystemFailureError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            _request_id(request),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return error_response(
            request,
            500,
            exc.error_kind,
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(DreamWeaverError)
    async def handle_application_error(request: Request, exc: DreamWeaverError):
        logger.error("[%s] Unhandled application error: %s", _request_id(request), exc.message)
        return error_response(request, 500, exc.error_kind, exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True
        )
        return error_response(
            request,
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="DreamWeaver API",
        description=(
            "Sleep tracking backend: begin a sleep session, record wake-ups through "
            "the night, and browse your sleep history and bedroom setups."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(sleep_sessions.router)
    app.include_router(bedrooms.router)
    app.include_router(health.router)

    return app


app = create_app()
