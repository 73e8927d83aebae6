from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.core.config import settings
from app.core.db import close_db, health_check_db, init_db
from app.core.exceptions import register_exception_handlers
from app.core.logging import LoggingContextMiddleware, get_logger, setup_logging
from app.routers import api_router
from app.services.notifier import wait_for_pending

logger = get_logger(__name__)

# pending status-update emails get this long to finish on shutdown
SHUTDOWN_GRACE_SECONDS = 10.0


# ======================================================================================
# Lifespan
# ======================================================================================
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ---- Startup
    setup_logging()
    logger.info("app_startup", environment=settings.ENVIRONMENT, version=settings.VERSION)
    logger.debug("app_settings", **settings.dump_settings_safe())
    await init_db()

    try:
        yield
    finally:
        # ---- Shutdown
        await wait_for_pending(timeout=SHUTDOWN_GRACE_SECONDS)
        await close_db()
        logger.info("app_shutdown")


# ======================================================================================
# Factory
# ======================================================================================
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=86400,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(LoggingContextMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, Any]:
        db = await health_check_db()
        return {
            "status": "healthy" if db.get("ok") else "degraded",
            "version": settings.VERSION,
            "checks": {"database": db},
        }

    return app


app = create_app()
