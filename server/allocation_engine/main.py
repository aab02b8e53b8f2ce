"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.dependencies import DatabaseSession
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    validation_exception_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import availability, booking, health, hold

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up tracing and the database on startup and disposes the engine on
    shutdown.
    """
    logger.info("Starting allocation engine")
    logger.info(f"Environment: {settings.environment}")

    setup_tracing(SERVICE_NAME)
    setup_metrics(SERVICE_NAME)
    instrument_sqlalchemy(engine)
    logger.info("Observability setup completed")

    await init_db()
    logger.info("Database initialized successfully")

    yield

    logger.info("Shutting down allocation engine")
    await close_db()
    logger.info("Database connections closed")


def register_exception_handlers(app: FastAPI) -> None:
    """Register RFC 9457 Problem Details handlers."""
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


def register_routers(app: FastAPI) -> None:
    """Register API routers."""
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(availability.router)
    app.include_router(hold.router)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Allocation Engine API",
        description=(
            "RPC-over-HTTP API for supplier selection, capacity-safe multi-item "
            "bookings and cancellations"
        ),
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)
    register_exception_handlers(app)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        """Liveness probe."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        response_model=dict,
    )
    async def readiness_check(db: AsyncSession = DatabaseSession):
        """Readiness probe; fails with 503 when the database is unreachable."""
        try:
            await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Readiness check failed", extra={"error": str(e)})
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "not_ready",
                    "service": SERVICE_NAME,
                    "checks": {"database": "unavailable"},
                },
            )

        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "checks": {"database": "ok"},
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        """Service information and allocation policy in effect."""
        return {
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "environment": settings.environment,
            "policy": {
                "low_inventory_threshold": settings.low_inventory_threshold,
                "low_margin_threshold_percent": settings.low_margin_threshold_percent,
                "unbounded_availability": settings.unbounded_availability,
                "default_supplier_priority": settings.default_supplier_priority,
                "hold_ttl_seconds": settings.hold_ttl_seconds,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    register_routers(app)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "allocation_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
