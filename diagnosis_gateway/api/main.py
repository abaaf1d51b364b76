"""Main FastAPI application for the diagnosis ledger gateway.

This module sets up the FastAPI application with all routes, middleware,
exception handlers and configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diagnosis_gateway.api.dependencies import get_connection_manager, get_settings
from diagnosis_gateway.api.error_handlers import REQUEST_ID_HEADER, register_exception_handlers
from diagnosis_gateway.api.logging_config import setup_logging
from diagnosis_gateway.api.middleware import ResponseObserver, setup_middleware
from diagnosis_gateway.api.routes import diagnosis, health
from diagnosis_gateway.infrastructure.settings import Settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    The connection profile is loaded here, once, so a misconfigured
    deployment fails at startup instead of on the first request.
    """
    settings = app.dependency_overrides.get(get_settings, get_settings)()
    logger.info(f"{settings.app_name} starting up ({settings.environment})...")
    manager = app.dependency_overrides.get(get_connection_manager, get_connection_manager)()
    logger.info(
        f"Ledger target: channel={manager.config.channel_name} "
        f"contract={manager.config.contract_id} identity={manager.config.identity_label}"
    )
    logger.info("API documentation available at /api/docs")
    yield
    logger.info(
        f"{settings.app_name} shutting down "
        f"(connections acquired={manager.acquired} released={manager.released})"
    )


def create_app(
    settings: Optional[Settings] = None,
    observers: Optional[Iterable[ResponseObserver]] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters:
        settings: Application settings (defaults to the cached environment settings)
        observers: Post-response observers (defaults to access logging)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    setup_logging(use_json=settings.json_logs, log_level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="REST gateway for medical diagnosis records on a permissioned ledger",
        version=settings.version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    setup_middleware(app, settings, observers)

    # CORS is outermost so preflight requests are answered before rate limiting
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time", REQUEST_ID_HEADER],
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(diagnosis.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": settings.app_name,
            "version": settings.version,
            "docs": "/api/docs",
            "endpoints": {
                "health": "/api/health",
                "blockchainHealth": "/api/health/blockchain",
                "detailedHealth": "/api/health/detailed",
                "diagnosisForms": "/api/diagnosis/forms",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "diagnosis_gateway.api.main:app",
        host="0.0.0.0",
        port=3000,
        log_level="info",
    )
