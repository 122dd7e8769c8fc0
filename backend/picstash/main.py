"""
PicStash Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes logging, middleware, exception mapping, routes and the
       static mount of the upload directory in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn picstash.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────┐ ┌──────────┐ ┌──────────┐                  │
    │  │ Req ID   │→│ Logging  │→│  CORS    │                  │
    │  └──────────┘ └──────────┘ └──────────┘                  │
    │                                                          │
    │  Routes:                                                 │
    │  ┌──────────────────────┐ ┌─────────────┐ ┌───────────┐  │
    │  │ * /api/files         │ │ GET /health │ │ /uploads  │  │
    │  └──────────────────────┘ └─────────────┘ └───────────┘  │
    │                                                          │
    │  Exception Handlers:                                     │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ Validation→400 │ Forbidden→403 │ NotFound→404      │  │
    │  │ Method→405     │ Config/Storage→500                │  │
    │  └────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged; requests fail with 500 until fixed)
    3. Create the upload directory
    Shutdown:
    1. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.responses import Response

from picstash import __version__
from picstash.config import settings
from picstash.exceptions import (
    ConfigurationError,
    DownloadForbiddenError,
    FileStorageError,
    MethodNotAllowedError,
    NotFoundError,
    PicStashError,
    ValidationError,
)
from picstash.middleware.logging import RequestLoggingMiddleware
from picstash.middleware.request_id import RequestIDMiddleware, request_id_var
from picstash.routes import files, health
from picstash.services.storage import LocalFileStore

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during startup, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("PicStash Backend %s starting up...", __version__)

    try:
        settings.validate_required()
    except ConfigurationError as e:
        # Not fatal: /health reports it and every upload request answers 500
        logger.error("Configuration error (%s): %s", e.setting, e.message)
    else:
        store = LocalFileStore(settings.upload_dir)
        try:
            await store.ensure_root()
            logger.info("Upload directory: %s", store.root)
        except FileStorageError as e:
            logger.error("Upload directory unavailable: %s", e.message)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PicStash Backend shutting down...")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(code: str, message: str, rid: str, details: Optional[dict] = None) -> dict:
    body = {"error": code, "message": message, "request_id": rid}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to HTTP responses.

    Handler hierarchy:
        ValidationError         → 400 Bad Request
        DownloadForbiddenError  → 403 Forbidden
        NotFoundError           → 404 Not Found
        MethodNotAllowedError   → 405, empty body
        ConfigurationError      → 500
        FileStorageError        → 500
        PicStashError (base)    → 500
        Exception (fallback)    → 500

    Security: 5xx responses never carry the exception context (paths, OS
    errors); it is logged server-side only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, rid, exc.context),
        )

    @app.exception_handler(DownloadForbiddenError)
    async def handle_download_forbidden(request: Request, exc: DownloadForbiddenError):
        rid = request_id_var.get("")
        logger.info("[%s] Download refused: %s", rid, exc.message)
        return JSONResponse(
            status_code=403,
            content=_error_body("forbidden", exc.message, rid),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        rid = request_id_var.get("")
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message, rid),
        )

    @app.exception_handler(MethodNotAllowedError)
    async def handle_method_not_allowed(request: Request, exc: MethodNotAllowedError):
        """405 with no body, as the upload widget expects."""
        rid = request_id_var.get("")
        logger.info("[%s] %s: %s", rid, exc.message, exc.method)
        return Response(
            status_code=405,
            headers={"Allow": ", ".join(settings.allowed_methods_list)},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        rid = request_id_var.get("")
        logger.error("[%s] Configuration error (%s): %s", rid, exc.setting, exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("configuration_error", exc.message, rid),
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        rid = request_id_var.get("")
        logger.error("[%s] File storage error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message, rid),
        )

    @app.exception_handler(PicStashError)
    async def handle_picstash_error(request: Request, exc: PicStashError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message, rid),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
                rid,
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Assemble middleware, handlers, routes and the upload directory mount."""
    app = FastAPI(
        title="PicStash API",
        description=(
            "Upload handler compatible with the jQuery File Upload widget: "
            "multipart and chunked uploads, listing, download and delete, with "
            "EXIF orientation and resizing for images."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.access_control_allow_credentials,
        allow_methods=settings.allowed_methods_list,
        allow_headers=settings.allowed_headers_list,
        expose_headers=["X-Request-ID", "Range"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(files.router)
    app.include_router(health.router)

    # Stored files are served directly when upload_url is a local path
    # (an absolute URL points at another server, e.g. a CDN)
    upload_url = settings.upload_url.rstrip("/")
    if upload_url.startswith("/"):
        app.mount(
            upload_url,
            StaticFiles(directory=settings.upload_dir, check_dir=False),
            name="uploads",
        )

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
