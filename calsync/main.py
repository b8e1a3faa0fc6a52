"""
FastAPI application for the calendar sync engine

Request handling only - provider pulls run in workers
"""
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from contextlib import asynccontextmanager
import logging

from calsync.config.settings import get_settings
from calsync.core.errors import register_exception_handlers
from calsync.core.middleware import correlation_id_middleware, request_logging_middleware
from calsync.core.monitoring import health_router
from calsync.api.v1.router import api_v1_router
from calsync.utils.my_logging import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging()
    routes = sorted(
        (route.path, sorted(route.methods)) for route in app.routes if isinstance(route, APIRoute)
    )
    logger.info(f"Calendar sync API starting up with {len(routes)} routes")
    for path, methods in routes:
        logger.debug(f"  {','.join(methods):12} {path}")

    yield

    logger.info("Calendar sync API shutting down...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title="Calendar Sync API",
        description="Availability, appointments and multi-provider calendar sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "PUT"],
        allow_headers=["*"],
    )

    app.middleware("http")(correlation_id_middleware)
    app.middleware("http")(request_logging_middleware)

    register_exception_handlers(app)

    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1", tags=["api"])

    @app.get("/")
    async def root():
        return {
            "service": "Calendar Sync API",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "calendar": "/api/v1/calendar",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "calsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
