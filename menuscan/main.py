"""
FastAPI application setup with dependency injection.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Optional

from menuscan.config.loader import load_config_for_environment
from menuscan.config.settings import Settings, get_settings
from menuscan.core.dependencies import ServiceContainer
from menuscan.core.error_handlers import error_handler, setup_error_handlers
from menuscan.core.logging import configure_logging
from menuscan.core.metrics import get_metrics_snapshot
from menuscan.middleware import RequestContextMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan management with service container.
    """
    settings = app.state.settings
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    container = getattr(app.state, 'service_container', None)
    if container is None:
        container = ServiceContainer(settings)
        app.state.service_container = container

    await container.initialize_services()
    logger.info("Application startup complete")
    try:
        yield
    finally:
        logger.info("Shutting down application")
        await container.cleanup_services()
        logger.info("Application shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use instead of the global ones
        container: Pre-built service container (tests pass one wired to fakes)
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level.value, settings.log_format)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.settings = settings
    if container is not None:
        app.state.service_container = container

    app.add_middleware(
        CORSMiddleware,
        **settings.get_cors_config()
    )
    app.add_middleware(RequestContextMiddleware)

    setup_error_handlers(app)

    from menuscan.api import menu_router, dish_image_router
    app.include_router(menu_router)
    app.include_router(dish_image_router)

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "status": "running"
        }

    @app.get("/health")
    async def health_check():
        """Service status: model API configuration, cache and concurrency counters, error statistics."""
        timestamp = datetime.now(timezone.utc).isoformat()
        service_container = getattr(app.state, 'service_container', None)

        if service_container is None or not service_container.is_initialized:
            return {
                "status": "unhealthy",
                "message": "Service container not initialized",
                "version": settings.app_version,
                "timestamp": timestamp,
            }

        details = {
            "model_api": {
                "configured": settings.model_api.is_configured,
                "base_url": settings.model_api.base_url,
                "extraction_model": settings.model_api.extraction_model,
                "translation_model": settings.model_api.translation_model,
                "image_model": settings.model_api.image_model,
            },
            "dish_image_cache": service_container.get_dish_image_cache().get_stats(),
            "concurrency": service_container.get_concurrency_manager().get_metrics_summary(),
            "latency": get_metrics_snapshot(),
        }

        cache_client = service_container.get_cache_client()
        if cache_client is None:
            details["redis"] = {"status": "disabled"}
        else:
            details["redis"] = {"status": "healthy" if await cache_client.ping() else "degraded"}

        overall_status = "healthy" if settings.model_api.is_configured else "degraded"

        return {
            "status": overall_status,
            "version": settings.app_version,
            "timestamp": timestamp,
            "details": details,
            "error_statistics": error_handler.get_error_statistics()
        }

    return app


def create_app_from_environment() -> FastAPI:
    """Factory for uvicorn: settings come from ``.env.<ENVIRONMENT>`` when present."""
    return create_app(load_config_for_environment(os.getenv("ENVIRONMENT")))


# Create application instance
app = create_app()
