"""
FastAPI Application

Main entry point for the Store Order Analytics API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from order_analytics.config import Settings, get_settings
from order_analytics.exceptions import IngestionValidationError, OrderAnalyticsError
from order_analytics.serving.api.middleware import RequestLoggingMiddleware
from order_analytics.serving.api.routes import (
    analytics_router,
    health_router,
    orders_router,
)
from order_analytics.store import KeyValueStore, open_store

logger = structlog.get_logger(__name__)


def create_app(
    store: Optional[KeyValueStore] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Use this store instead of opening the configured backend
        settings: Override application settings

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        from order_analytics.config.logging import configure_logging
        configure_logging(settings=settings)

        logger.info("Starting Store Order Analytics API", environment=settings.app_env)

        owns_store = store is None
        app.state.store = store if store is not None else await open_store(settings)
        logger.info("Store opened", backend=type(app.state.store).__name__)

        yield

        logger.info("Shutting down...")
        if owns_store:
            await app.state.store.close()
            from order_analytics.database import close_database
            await close_database()

    app = FastAPI(
        title="Store Order Analytics API",
        description="Order ingestion with deduplication and daily active-store analytics",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if store is not None:
        app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(IngestionValidationError)
    async def validation_error_handler(request: Request, exc: IngestionValidationError):
        logger.warning("Ingestion rejected", path=request.url.path, reason=str(exc))
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

    @app.exception_handler(OrderAnalyticsError)
    async def pipeline_error_handler(request: Request, exc: OrderAnalyticsError):
        logger.error(
            "Request failed",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Store Order Analytics API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
