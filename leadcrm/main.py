from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from leadcrm.core.config import Settings, settings as default_settings
from leadcrm.core.exceptions import BaseAPIException, ServiceUnavailableError
from leadcrm.core.logging import configure_structlog, get_structlog_logger, set_request_id
from leadcrm.middleware.auth import AuthMiddleware
from leadcrm.middleware.logging import LoggingMiddleware
from leadcrm.middleware.request_id import RequestIdMiddleware
from leadcrm.routes import (
    admin_leads_router,
    admin_notifications_router,
    broadcasting_router,
    health_router,
    leads_router,
    provider_leads_router,
    provider_notifications_router,
    providers_router,
    realtime_router,
    settings_router,
)
from leadcrm.services.container import ServiceContainer, build_container
from leadcrm.services.redis import RedisConnection

# Configure logging before creating app
configure_structlog()
logger = get_structlog_logger(__name__)


def _field_errors(exc: RequestValidationError) -> Dict[str, str]:
    """Collapse pydantic errors into ``{field: message}``; the first error per field wins."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", []) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "__root__"
        errors.setdefault(field, error.get("msg", "Invalid value"))
    return errors


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Handle custom API exceptions."""
        logger.warning(
            "api.exception",
            status_code=exc.status_code,
            code=exc.code,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors."""
        errors = _field_errors(exc)
        logger.warning(
            "validation.error",
            path=request.url.path,
            method=request.method,
            fields=sorted(errors),
        )
        return JSONResponse(
            status_code=422,
            content={
                "code": "validation_error",
                "message": "Request validation failed",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        error_id = f"err_{int(time.time())}_{hash(str(exc)) % 10000:04d}"
        set_request_id(error_id)

        logger.error(
            "unhandled.exception",
            error_id=error_id,
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )

        message = f"Internal server error: {exc}" if settings.is_development else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "internal_error", "message": message, "details": {"error_id": error_id}},
            headers={"X-Error-ID": error_id},
        )


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or default_settings
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info("application.starting", environment=settings.environment)

        if settings.assignment_cursor_backend == "redis":
            connection = RedisConnection(settings)
            try:
                container.use_cursor_store(await connection.cursor_store())
                container.redis = connection
            except ServiceUnavailableError:
                # The in-process cursor keeps assignment working on one node
                if settings.is_production:
                    raise

        if settings.sentry_dsn:
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                environment=settings.environment,
                integrations=[
                    AsyncioIntegration(),
                    FastApiIntegration(),
                    StarletteIntegration(),
                ],
                traces_sample_rate=1.0 if settings.is_development else 0.1,
                send_default_pii=False,
            )
            logger.info("sentry.initialized")

        logger.info("application.started", realtime=settings.realtime_configured)
        yield

        logger.info("application.shutting_down")
        container.event_bus.clear_subscribers()
        if container.redis is not None:
            await container.redis.close()
            container.redis = None
        logger.info("application.shutdown_complete")

    app = FastAPI(
        title="LeadCRM API",
        version="1.0.0",
        description="Lead lifecycle, assignment and realtime notification service",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )
    # Attached here rather than in lifespan so in-process transports that
    # skip lifespan still see the services
    app.state.container = container
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins(),
        allow_credentials=True,
        allow_methods=settings.methods(),
        allow_headers=settings.headers(),
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["*"] if not settings.is_production else ["api.leadcrm.app", "*.leadcrm.app"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(AuthMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(LoggingMiddleware)

    _register_exception_handlers(app, settings)

    for router in (
        health_router,
        leads_router,
        admin_leads_router,
        provider_leads_router,
        admin_notifications_router,
        provider_notifications_router,
        broadcasting_router,
        settings_router,
        providers_router,
    ):
        app.include_router(router, prefix=settings.api_prefix)

    # Pusher clients connect at /app/{key} on the host root
    app.include_router(realtime_router)

    if not settings.is_testing:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "LeadCRM API",
            "version": app.version,
            "environment": settings.environment,
            "docs": "/docs" if settings.is_development else None,
            "health": f"{settings.api_prefix}/health",
        }

    logger.info("application.configured", environment=settings.environment)
    return app


app = create_app()
