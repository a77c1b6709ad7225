"""
FastAPI application entry point with health endpoint and service routing.

This module provides the main FastAPI application instance with CORS
configuration, request logging, rate limiting, the error envelope handlers
and the v1 routers. The lifespan runs the periodic reservation expiry sweep
and disposes of database connections on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.api.deps import (
    get_notification_service,
    get_order_service,
    get_reservation_service,
)
from marketplace.api.rate_limit import limiter
from marketplace.api.v1 import api_router
from marketplace.core.config import get_settings
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from marketplace.database.connection import (
    check_database_health,
    close_database_connections,
    get_session,
)

configure_logging()
logger = get_logger(__name__)


async def run_reservation_expiry_sweep() -> int:
    """Expire stale pending reservations in a session of its own."""
    async with get_session() as session:
        notifications = get_notification_service(session)
        service = get_reservation_service(
            session, get_order_service(session, notifications), notifications
        )
        return await service.expire_old_reservations()


async def expire_reservations_periodically(interval_seconds: int) -> None:
    """
    Background task expiring pending reservations past their expiry.

    Failures are logged and the loop carries on with the next run.
    """
    while True:
        try:
            await run_reservation_expiry_sweep()
        except Exception as e:
            logger.error(
                "Failed to expire reservations",
                error=str(e),
                error_type=type(e).__name__,
            )
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Start the reservation expiry sweep on startup; on shutdown cancel it
    and dispose of the database engine.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    sweep_task = asyncio.create_task(
        expire_reservations_periodically(settings.reservation_sweep_interval_seconds)
    )
    logger.info(
        "Reservation expiry sweep started",
        interval_seconds=settings.reservation_sweep_interval_seconds,
    )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


def _error_response(
    status_code: int,
    message: str,
    error: str,
    **extra,
) -> JSONResponse:
    content = {
        "success": False,
        "message": message,
        "error": error,
        "request_id": get_request_id(),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Marketplace backend API for buyers and suppliers",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """
        Bind X-Request-ID (echoed on the response) and log each request
        with its duration.
        """
        request_id = set_request_id(request.headers.get("X-Request-ID"))

        logger.info(
            "Request received",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        try:
            with log_performance(
                logger,
                "request_processing",
                method=request.method,
                path=request.url.path,
            ):
                response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(MarketplaceError)
    async def marketplace_exception_handler(
        request: Request, exc: MarketplaceError
    ) -> JSONResponse:
        """Render domain errors with their status and error code."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=exc.message,
            error_code=exc.error_code,
            status_code=exc.status_code,
            context=exc.context,
        )
        return _error_response(exc.status_code, exc.message, exc.error_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Render request validation errors as 400 with details."""
        logger.warning(
            "Request validation failed",
            method=request.method,
            path=request.url.path,
            errors=exc.errors(),
        )
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "Request validation failed",
            "VALIDATION_ERROR",
            details=exc.errors(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle unexpected exceptions with a generic error response.

        Logs error with full context and avoids exposing internal details.
        """
        logger.error(
            "Unhandled exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "UNEXPECTED_ERROR",
        )

    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check endpoint",
        response_description="Application and database health",
    )
    async def health_check() -> JSONResponse:
        """Report service health; 503 when the database is unreachable."""
        database_ok = await check_database_health()
        return JSONResponse(
            status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "service": settings.app_name,
                "version": settings.app_version,
                "environment": settings.environment,
                "database": "healthy" if database_ok else "unhealthy",
            },
        )

    app.include_router(api_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()
