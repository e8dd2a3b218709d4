"""FastAPI application factory and entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from citewatch import __version__
from citewatch.config import get_settings
from citewatch.db.engine import dispose_engine, init_db
from citewatch.errors import CitewatchError
from citewatch.routers import health, monitors
from citewatch.services.cache import TTLCache
from citewatch.services.dedupe import RequestDeduplicator
from citewatch.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def configure_logging(environment: str) -> None:
    logging.basicConfig(
        level=logging.DEBUG if environment == "development" else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Startup
    settings = get_settings()
    configure_logging(settings.environment)
    logger.info("Starting citewatch API v%s in %s mode", __version__, settings.environment)

    # Reject insecure default secrets in production
    settings.validate_production()

    # Create tables (for SQLite dev mode; production uses Alembic migrations)
    if settings.environment == "development":
        await init_db()
        logger.info("Database tables created/verified")

    yield

    # Shutdown
    await app.state.http_client.aclose()
    await dispose_engine()
    logger.info("citewatch API shut down")


async def handle_citewatch_error(request: Request, exc: CitewatchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Disable interactive docs in production to reduce attack surface
    docs_url = "/docs" if settings.environment == "development" else None
    redoc_url = "/redoc" if settings.environment == "development" else None
    openapi_url = "/openapi.json" if settings.environment == "development" else None

    app = FastAPI(
        title="citewatch API",
        description="Real-time AI answer-engine citation monitoring",
        version=__version__,
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
    )

    # Process-wide engine components, shared by every request
    app.state.cache = TTLCache(max_size=settings.cache_max_size)
    app.state.rate_limiter = RateLimiter()
    app.state.deduplicator = RequestDeduplicator()
    app.state.http_client = httpx.AsyncClient()

    app.add_exception_handler(CitewatchError, handle_citewatch_error)

    origins = [o.strip() for o in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # Security headers middleware
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        return response

    app.include_router(health.router)
    app.include_router(monitors.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "citewatch.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment == "development"),
    )
