"""
==============================================================================
FoodScan - Application Entry Point
==============================================================================

Serves the barcode pipeline over HTTP:

- POST /api/v1/scan/image     decode an uploaded photo
- POST /api/v1/scan/manual    accept a typed barcode
- GET  /api/v1/products/{c}   Open Food Facts lookup
- WS   /ws/scan               live scanning from the browser camera

Usage:
------
    uvicorn foodscan.main:app --reload
    python -m foodscan.main

==============================================================================
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foodscan import __version__
from foodscan.api.router import api_router
from foodscan.capture import close_all_live_sessions, get_capture_manager
from foodscan.config import Settings, get_settings
from foodscan.core.exceptions import register_exception_handlers
from foodscan.websockets import scanner_router


settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

logger = logging.getLogger(__name__)


class Application:
    """
    Builds the FastAPI app and owns its lifespan.

    Startup verifies that the ZBar library loads, so a missing system
    dependency shows up in the log before the first scan. Shutdown releases
    any camera still held by a live session.
    """

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        return self._app

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title=self._settings.app_name,
            version=__version__,
            description="Barcode capture and product lookup service",
            lifespan=self._lifespan,
        )

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self._settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        register_exception_handlers(app)
        app.include_router(api_router)
        app.include_router(scanner_router)

        @app.get("/")
        async def root():
            """Service summary."""
            return {
                "name": self._settings.app_name,
                "version": __version__,
                "environment": self._settings.app_env,
                "docs": "/docs",
                "live_scan": "/ws/scan",
            }

        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self._log_startup()
        yield
        logger.info("🛑 Shutting down...")
        closed = close_all_live_sessions()
        logger.info(f"✅ Released {closed} live session(s)")

    def _log_startup(self) -> None:
        s = self._settings
        logger.info(f"🚀 Starting {s.app_name} {__version__} ({s.app_env})")
        logger.info(
            f"🔍 Symbologies: {', '.join(s.symbologies_list)} | "
            f"accept after {s.scan_accept_threshold} reads | "
            f"min length {s.scan_min_code_length} | {s.scan_frequency:g} fps"
        )

        try:
            get_capture_manager().create_decoder().self_test()
            logger.info("✅ ZBar decoder ready")
        except Exception as e:
            logger.error(f"❌ ZBar decoder unavailable: {e}")

        logger.info(f"📖 API Docs: http://{s.host}:{s.port}/docs")


app = Application().app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "foodscan.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info"
    )
