"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and exception
handlers, and mounts the admin, read-surface and system routers.

Usage::

    # Development server (from project root)
    uvicorn arena_reconciler.api.main:app --reload

    # Production (via Docker / Gunicorn + Uvicorn workers)
    gunicorn arena_reconciler.api.main:app -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arena_reconciler import __version__
from arena_reconciler.config.settings import get_settings
from arena_reconciler.core.logging_config import configure_logging, request_id_var

# ---------------------------------------------------------------------------
# Logging configuration: applied once at module import time so that log
# records emitted during app construction are captured correctly.
# The log level is re-applied inside create_app() after settings are loaded.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)


def _route_template(request: Request) -> str:
    """Return the matched route template (``/projects/{project_id}/...``) for metrics labels."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment before the
    singleton is created.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()

    # Re-apply logging configuration with the correct level from settings.
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Keeps exactly one canonical leaderboard arena per eligible "
            "project across approvals, backfills and legacy data."
        ),
        version=__version__,
        debug=settings.debug,
        redirect_slashes=False,
    )

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every incoming request and its response status + duration.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted during a request can be correlated, and records the
        HTTP Prometheus metrics.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler in the chain.

        Returns:
            The HTTP response from the handler.
        """
        from arena_reconciler.api.metrics import (  # noqa: PLC0415
            http_request_duration_seconds,
            http_requests_total,
        )

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        # Populate the ContextVar so stdlib logging records also carry the ID.
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )
            path = _route_template(request)
            http_requests_total.labels(
                method=request.method, path=path, status=str(status_code)
            ).inc()
            http_request_duration_seconds.labels(method=request.method, path=path).observe(
                elapsed
            )

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Exception handlers ------------------------------------------------

    from arena_reconciler.api.errors import register_exception_handlers  # noqa: PLC0415

    register_exception_handlers(application)

    # ---- Application routers ----------------------------------------------

    from arena_reconciler.api.routes import (  # noqa: PLC0415
        arenas,
        health as health_routes,
        projects,
    )

    application.include_router(health_routes.router)
    application.include_router(arenas.router, prefix="/admin/arenas", tags=["admin:arenas"])
    application.include_router(projects.router, prefix="/projects", tags=["projects"])

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    async def on_startup() -> None:
        """Log application startup information."""
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        """Log clean shutdown."""
        logger.info("application_shutdown")

    # ---- Health & metrics endpoints ---------------------------------------

    @application.get("/health", tags=["system"], include_in_schema=True)
    async def health() -> JSONResponse:
        """Return a minimal process-level liveness status.

        Used by Docker health checks and load balancers that need a fast
        ``200 OK`` without performing any I/O.  Dependency checks are at
        ``/api/health``.

        Returns:
            JSON response with ``{"status": "ok"}``.
        """
        return JSONResponse({"status": "ok"})

    if settings.metrics_enabled:

        @application.get("/metrics", tags=["system"], include_in_schema=False)
        async def metrics() -> Response:
            """Prometheus text-format exposition."""
            from arena_reconciler.api.metrics import get_metrics_response  # noqa: PLC0415

            body, content_type = get_metrics_response()
            return Response(content=body, media_type=content_type)

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn / Gunicorn.
"""
