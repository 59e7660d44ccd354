"""
Tidyloads - Main FastAPI Application

Control surface for the inbox organizer:
- Monitoring state and manual scans
- Pending files, moves and reverts
- Installer lifecycle signals
- Preferences and activity history
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from domains.file_ingest.service import InboxOrganizer
from tidyloads.api import activity, health, installers, organizer, preferences
from tidyloads.utils.config import Settings, get_settings
from tidyloads.utils.helpers import configure_logging


def create_app(settings: Optional[Settings] = None, inbox_organizer: Optional[InboxOrganizer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the cached environment settings
        inbox_organizer: Pre-built organizer; built from settings when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Starting {settings.api_title} v{settings.api_version}")

        service = inbox_organizer or InboxOrganizer.from_settings(settings)
        app.state.organizer = service

        if settings.auto_start and service.preferences.get().enabled:
            if service.start_monitoring():
                logger.success(f"Monitoring {service.inbox}")
            else:
                logger.error(f"Monitoring not started: {service.last_error}")

        yield

        # Cleanup
        logger.info("Shutting down application...")
        service.shutdown()
        logger.success("Application shut down complete")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Downloads folder organizer with installer lifecycle tracking",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Local control surface; tighten if exposed beyond localhost
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
            }
        )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(organizer.router, prefix="/organizer", tags=["Organizer"])
    app.include_router(activity.router, prefix="/activity", tags=["Activity"])
    app.include_router(installers.router, prefix="/installers", tags=["Installers"])
    app.include_router(preferences.router, prefix="/preferences", tags=["Preferences"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Tidyloads",
            "version": settings.api_version,
            "inbox": str(settings.get_inbox_dir()),
            "docs": "/docs",
            "health": "/health"
        }

    return app


# Configure logging
configure_logging(get_settings().log_level)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tidyloads.main:app",
        host="127.0.0.1",
        port=get_settings().api_port,
        log_level=get_settings().log_level.lower()
    )
