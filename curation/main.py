"""FastAPI application entry point."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from curation.core.config import get_settings
from curation.core.database import get_engine, init_tables
from curation.core.logging import configure_logging
from curation.collections import router as collections_router
from curation.collections.loader import sync_definitions

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting %s...", settings.app_name)

    logger.info("Initializing database...")
    init_tables()

    if settings.sync_definitions_on_startup:
        logger.info("Syncing collection definitions from %s", settings.collections_dir)
        with Session(get_engine()) as session:
            sync_definitions(session)

    yield

    # Shutdown
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Rule-defined recipe collections and publication readiness",
        version=VERSION,
        lifespan=lifespan,
    )

    # CORS middleware - configurable via CORS_ORIGINS env var
    cors_origins_str = os.getenv("CORS_ORIGINS", "*")
    cors_origins = cors_origins_str.split(",") if cors_origins_str != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(collections_router)  # /admin/collections

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": VERSION,
            "endpoints": {
                "collections": "/admin/collections - Collection CRUD, detail and snapshot list",
                "test-rules": "/admin/collections/{id}/test-rules - Dry-run a rule configuration",
                "preview": "/admin/collections/preview - Published match count for a rule",
                "overrides": "/admin/collections/{id}/pin, /exclude - Manual overrides",
                "refresh": "/admin/collections/refresh-counts - Recompute counts snapshots",
                "publish": "/admin/collections/{id}/publish - Publish with a qualification check",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
