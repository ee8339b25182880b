"""FastAPI application for Hookline."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hookline import __version__
from hookline.config import Settings
from hookline.exceptions import (
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from hookline.logging import configure_logging, get_logger
from hookline.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Creates the WebhookService, starts background delivery on startup,
    and drains it on shutdown.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info("Starting Hookline API", log_level=settings.log_level, env=settings.env)

    service = WebhookService.create(settings)
    await service.initialize()
    await service.start()
    set_service(service)

    yield

    set_service(None)
    await service.close()
    logger.info("Hookline API stopped")


def register_exception_handlers(app: FastAPI) -> None:
    """Map Hookline exceptions to HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        """Handle storage errors with 503 when transient, 500 otherwise."""
        logger.error(
            "Storage error", error=exc.message, transient=exc.transient, path=str(request.url)
        )
        return JSONResponse(status_code=503 if exc.transient else 500, content=exc.to_dict())

    @app.exception_handler(HooklineError)
    async def hookline_error_handler(request: Request, exc: HooklineError) -> JSONResponse:
        """Handle all other Hookline errors with 500 status."""
        logger.error("Hookline error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookline.api import create_app

        app = create_app()
        # Run with: uvicorn hookline.api:app
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Hookline",
        description="Webhook event dispatch and delivery.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
