"""
FastAPI application entry point.

Using an application factory (create_app) so tests can build an app
with their own dependency overrides.

For local development:
    S3_MOCK_MODE=true META_MOCK_MODE=true uvicorn mediastore.main:app --reload

For production:
    gunicorn mediastore.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import health, objects
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration state on startup and shutdown."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "mediastore starting",
        extra={
            "version": __version__,
            "mock_mode": {
                "metadata": settings.meta_mock_mode,
                "s3": settings.s3_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("mediastore shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Signed-link transfer server for large objects.

        1. **Reserve**: `POST /{user}/{repo}/objects` with `{oid, size}`
        2. **Upload**: `PUT` the bytes to the returned `upload` link, sending its headers verbatim
        3. **Verify**: `POST` to the returned `verify` link
        4. **Download**: `GET /{user}/{repo}/objects/{oid}` redirects to the object store
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        objects.router,
        tags=["Objects"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Log the full error server-side, return a generic message."""
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
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "mediastore.main:app",
        host="0.0.0.0",
        port=8080,
        reload=True,
        log_level=settings.log_level.lower(),
    )
