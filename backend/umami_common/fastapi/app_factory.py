"""
FastAPI application factory shared by the ingest and analytics services.

Every service gets the same error contract: domain errors and request
validation errors answer ``{"error": {"code", "message", "field"?}}`` with the
status of the error class, storage trouble answers 503 with ``Retry-After``,
and anything unexpected answers a generic 500 with the traceback logged.

Endpoints added to every app:
    - GET /: service information
    - GET /health: liveness probe (not logged per request)

Usage:
    ```python
    app = create_fastapi_app(
        service_name="ingest-service",
        description="Tracker hit ingestion",
        api_router=api_router,
        public_cors=True,
    )
    ```
"""

from collections.abc import Callable
import time
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

from umami_common.config import BaseServiceSettings, get_settings
from umami_common.exceptions import (
    AnalyticsError,
    StorageUnavailable,
    TransientFailure,
    error_response_body,
)
from umami_common.logging import setup_logging

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
UNLOGGED_PATHS = frozenset({"/health"})
RETRY_AFTER_SECONDS = "1"


def _configure_cors(app: FastAPI, settings: BaseServiceSettings, public: bool) -> None:
    if public:
        # Trackers post from any customer site and never send cookies
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )
        return

    origins = settings.CORS_ORIGINS
    if not origins and settings.ENVIRONMENT != "PROD":
        origins = DEV_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _validation_field(exc: RequestValidationError) -> str | None:
    errors = exc.errors()
    if not errors:
        return None
    loc = [str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path")]
    return ".".join(loc) or None


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AnalyticsError)
    async def analytics_error_handler(request: Request, exc: AnalyticsError) -> JSONResponse:
        headers = {}
        if isinstance(exc, (StorageUnavailable, TransientFailure)):
            logger.opt(exception=exc).error(
                f"{exc.code} in {request.method} {request.url.path}: {exc.message}"
            )
            headers["Retry-After"] = RETRY_AFTER_SECONDS
        else:
            logger.info(f"{exc.code} in {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": error_response_body(exc)},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        body: dict[str, Any] = {"code": "invalid_input", "message": message}
        field = _validation_field(exc)
        if field:
            body["field"] = field
        logger.info(f"invalid_input in {request.method} {request.url.path}: {field}: {message}")
        return JSONResponse(status_code=422, content={"error": body})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An error occurred while processing your request. "
                    "Please try again later.",
                }
            },
        )


def create_fastapi_app(
    service_name: str,
    description: str,
    api_router: APIRouter | None = None,
    additional_setup: Callable[[FastAPI, BaseServiceSettings], None] | None = None,
    root_path: str = "",
    public_cors: bool = False,
) -> FastAPI:
    """
    Build a service application.

    Args:
        service_name: "ingest-service" or "analytics-service"; selects the
            settings class and the log file names.
        description: OpenAPI description.
        api_router: Mounted under ``API_V1_STR``.
        additional_setup: Called last with the app and its settings.
        root_path: Reverse proxy prefix, ignored in DEV.
        public_cors: Accept cross-origin requests from any site without
            credentials (tracker endpoints).
    """
    setup_logging(service_name)
    settings = get_settings(service_name)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        description=description,
        root_path=root_path if settings.ENVIRONMENT != "DEV" else "",
    )
    _configure_cors(app, settings, public_cors)

    @app.middleware("http")
    async def time_requests(request: Request, call_next: Callable[[Request], Any]) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
        if request.url.path not in UNLOGGED_PATHS:
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} - {elapsed_ms:.1f}ms"
            )
        return response

    if api_router:
        app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "environment": settings.ENVIRONMENT,
            "status": "healthy",
            "timestamp": time.time(),
        }

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "message": f"{settings.SERVICE_NAME} is running",
            "docs": "/docs",
            "health": "/health",
        }

    _register_error_handlers(app)

    if additional_setup:
        additional_setup(app, settings)

    logger.info(f"{settings.SERVICE_NAME} {settings.SERVICE_VERSION} ready ({settings.ENVIRONMENT})")
    return app
