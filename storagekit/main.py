"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn storagekit.main:app --reload

For production:
    gunicorn storagekit.main:app -w 4 -k uvicorn.workers.UvicornWorker

Chunked uploads are tracked in process memory, so run a single worker
(or route each upload to one worker) when using object store devices.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api.dependencies import close_device
from .api.routes import files, health
from .config.settings import get_settings
from .core.errors import (
    PathNotFoundError,
    ProtocolError,
    StorageError,
    UnsupportedOperationError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)

# Most specific first: the first isinstance match wins
ERROR_STATUS_CODES: list[tuple[type[StorageError], int]] = [
    (PathNotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedOperationError, status.HTTP_501_NOT_IMPLEMENTED),
    (ProtocolError, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(exc: StorageError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Checks the configuration on startup and releases the storage
    device's connection pool on shutdown.
    """
    # Startup
    settings = get_settings()

    logger.info(
        "storagekit API starting",
        extra={
            "version": settings.api_version,
            "device": settings.device,
        }
    )

    # Validate configuration
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    # Shutdown
    close_device()
    logger.info("storagekit API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        File storage over local disks and S3-compatible object stores.

        ## Authentication

        All file endpoints require an API key provided in the `X-API-Key` header.

        ## Chunked uploads

        1. **Send chunks**: `PUT /api/v1/files/{path}?chunk=N&chunks=TOTAL`
           - Chunks may arrive in any order
           - The response reports how many have been received
        2. **Finish**: the upload completes when the last missing chunk arrives
        3. **Cancel**: `DELETE /api/v1/files/{path}/upload`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        files.router,
        prefix="/api/v1/files",
        tags=["Files"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - redirect to docs."""
        return {
            "message": "storagekit File API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        """Translate device errors into HTTP status codes."""
        status_code = status_code_for(exc)

        log = logger.error if status_code >= 500 else logger.info
        log(
            "Storage error",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "error": str(exc),
            },
        )

        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full
        error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "storagekit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
