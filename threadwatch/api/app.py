"""FastAPI admin application with lifespan-managed monitor and store.

This module initializes the admin surface with:
- Lifespan context manager owning the store, config manager and monitor
- Structured logging (JSON) to logs/threadwatch.log
- Exception handlers for consistent error responses
- Health endpoints

Shared objects live on ``app.state``: ``settings``, ``store``,
``config_manager``, ``monitor`` (None until a valid config is applied) and
``started_at``.

Usage:
    threadwatch serve
    or
    uvicorn --factory threadwatch.api.app:build_default_app
"""

import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from threadwatch import __version__
from threadwatch.api.models import ErrorDetail, ErrorEnvelope
from threadwatch.api.responses import INTERNAL_ERROR, NOT_FOUND, VALIDATION_ERROR
from threadwatch.api.routes import config as config_routes
from threadwatch.api.routes import system
from threadwatch.api.runtime import activate_config, monitor_state
from threadwatch.backend.utils.errors import ConfigError, StorageError
from threadwatch.backend.utils.logging_config import get_logger, setup_logging
from threadwatch.config import ConfigManager, ProcessSettings
from threadwatch.monitor import SHUTDOWN_GRACE_SECONDS, ForumMonitor
from threadwatch.storage import ThreadStore, create_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store, load config and start the monitor; tear down in reverse.

    Objects already placed on ``app.state`` by ``create_app`` are used as-is.
    An invalid config file does not prevent startup: the API comes up with
    no monitor so the configuration can be fixed through POST /api/config.
    """
    logger = get_logger(__name__)
    state = app.state
    settings: ProcessSettings = state.settings

    if state.store is None:
        state.store = create_store(settings.db_type, settings.sqlite_path)
    if state.config_manager is None:
        state.config_manager = ConfigManager(settings.config_path)

    if state.monitor is None:
        try:
            activate_config(state, state.config_manager.load())
        except ConfigError as e:
            logger.error("monitor_not_configured", error=str(e))
    elif settings.monitor_autostart and not state.monitor.is_running:
        state.monitor.start()

    state.started_at = time.monotonic()
    logger.info("admin_api_started", db_type=settings.db_type, monitor=monitor_state(state))

    try:
        yield
    finally:
        if state.monitor is not None:
            drained = state.monitor.stop(timeout=SHUTDOWN_GRACE_SECONDS)
            if not drained:
                logger.warning("monitor_drain_timeout", grace_seconds=SHUTDOWN_GRACE_SECONDS)
        state.store.close()
        logger.info("admin_api_stopped")


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    error_envelope = ErrorEnvelope(error=ErrorDetail(code=code, message=message))
    return JSONResponse(
        status_code=status_code,
        content=error_envelope.model_dump(),
        headers={"Content-Type": "application/json"}
    )


def create_app(
    settings: Optional[ProcessSettings] = None,
    store: Optional[ThreadStore] = None,
    config_manager: Optional[ConfigManager] = None,
    monitor: Optional[ForumMonitor] = None,
) -> FastAPI:
    """Build the admin application.

    Anything not supplied is created from ``settings`` (default: the
    environment) when the lifespan starts.
    """
    app = FastAPI(
        title="threadwatch",
        description="Admin API for the forum thread and comment monitor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or ProcessSettings.from_env()
    app.state.store = store
    app.state.config_manager = config_manager
    app.state.monitor = monitor
    app.state.started_at = time.monotonic()

    app.include_router(config_routes.router)
    app.include_router(system.router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Convert request body validation errors into the ErrorEnvelope format."""
        get_logger(__name__).warning("validation_error", path=request.url.path, errors=exc.errors())
        return _error_response(422, VALIDATION_ERROR,
                               f"Request validation failed: {exc.errors()[0]['msg']}")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Route errors raised via raise_api_error() into the ErrorEnvelope format."""
        get_logger(__name__).warning("http_exception", path=request.url.path, status=exc.status_code)

        if isinstance(exc.detail, dict) and "code" in exc.detail:
            return _error_response(exc.status_code, exc.detail["code"], exc.detail["message"])

        code_map = {404: NOT_FOUND, 422: VALIDATION_ERROR}
        code = code_map.get(exc.status_code, INTERNAL_ERROR)
        return _error_response(exc.status_code, code, str(exc.detail) if exc.detail else "An error occurred")

    @app.exception_handler(404)
    async def not_found_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        get_logger(__name__).warning("not_found", path=request.url.path)
        return _error_response(404, NOT_FOUND, f"Resource not found: {request.url.path}")

    @app.exception_handler(500)
    async def internal_server_error_handler(request: Request, exc: Exception) -> JSONResponse:
        get_logger(__name__).error(
            "internal_server_error",
            path=request.url.path,
            error=str(exc),
            traceback=traceback.format_exc(),
        )
        return _error_response(500, INTERNAL_ERROR, "An internal server error occurred")

    @app.get("/")
    async def root() -> Dict[str, str]:
        """Basic liveness check.

        Example:
            GET / -> {"status": "ok", "message": "threadwatch admin API"}
        """
        return {
            "status": "ok",
            "message": "threadwatch admin API"
        }

    @app.get("/health")
    def health(request: Request) -> Dict[str, Any]:
        """Database reachability, monitor state and uptime.

        Example:
            GET /health -> {"status": "healthy", "database": "ok",
                            "monitor": "running", "uptime_seconds": 12.5}
        """
        state = request.app.state
        database = "ok"
        try:
            if state.store is None:
                database = "unavailable"
            else:
                state.store.ping()
        except StorageError as e:
            get_logger(__name__).error("health_database_ping_failed", error=str(e))
            database = "error"

        return {
            "status": "healthy" if database == "ok" else "degraded",
            "database": database,
            "monitor": monitor_state(state),
            "uptime_seconds": round(time.monotonic() - state.started_at, 1),
        }

    get_logger(__name__).info("fastapi_app_initialized", version=__version__)
    return app


def build_default_app() -> FastAPI:
    """App factory for ``uvicorn --factory``; settings and log level come from the environment."""
    settings = ProcessSettings.from_env()
    setup_logging(log_dir=settings.log_dir, level=settings.log_level)
    return create_app(settings)
