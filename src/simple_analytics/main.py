"""FastAPI application factory and entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from simple_analytics import __version__
from simple_analytics.config import get_settings
from simple_analytics.db.engine import dispose_engine, get_session_factory, init_db
from simple_analytics.routers import analytics, health
from simple_analytics.services.retention import run_retention_loop

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/analytics/sync"
GZIP_MINIMUM_SIZE = 1000


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Startup
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.environment == "development" else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(
        "Starting simple-analytics API v%s in %s mode", __version__, settings.environment
    )

    # Storage must be usable before serving; failures here abort startup
    await init_db()
    logger.info("Database tables created/verified")

    retention_task = asyncio.create_task(run_retention_loop(get_session_factory))

    yield

    # Shutdown
    retention_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await retention_task
    await dispose_engine()
    logger.info("Database connection closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    docs_url = "/docs" if settings.environment == "development" else None
    redoc_url = "/redoc" if settings.environment == "development" else None
    openapi_url = "/openapi.json" if settings.environment == "development" else None

    app = FastAPI(
        title="simple-analytics API",
        description="Page visit ingestion and aggregate statistics",
        version=__version__,
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
    )

    origins = [o.strip() for o in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    # Beacon senders often post text/plain to skip the CORS preflight
    @app.middleware("http")
    async def rewrite_sync_content_type(request: Request, call_next):
        if request.url.path == SYNC_PATH and request.method == "POST":
            content_type = request.headers.get("content-type", "")
            if "text/plain" in content_type:
                new_headers = []
                for k, v in request.scope["headers"]:
                    if k == b"content-type":
                        new_headers.append((k, b"application/json"))
                    else:
                        new_headers.append((k, v))
                request.scope["headers"] = new_headers
        return await call_next(request)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Cache-Control"] = "no-store"
        return response

    app.include_router(health.router)
    app.include_router(analytics.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "simple_analytics.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment == "development"),
    )
