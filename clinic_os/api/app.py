"""FastAPI application for Clinic OS."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_os import __version__
from clinic_os.api.middleware import APIKeyMiddleware, RequestLoggingMiddleware
from clinic_os.api.routes import appointments, clinic_settings, health, partners
from clinic_os.config import get_settings
from clinic_os.core.database import init_db
from clinic_os.scheduling.booking import PartnerLocks
from clinic_os.scheduling.errors import SchedulingError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Clinic OS API")

    await init_db()

    logger.info("Clinic OS API started successfully")

    yield

    logger.info("Shutting down Clinic OS API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Clinic OS API",
        description="Appointment booking with conflict detection for a single clinic",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.partner_locks = PartnerLocks()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    if settings.has_api_key:
        app.add_middleware(APIKeyMiddleware, api_key=settings.api_key)

    app.include_router(health.router, tags=["health"])
    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(appointments.router, prefix="/api/v1", tags=["appointments"])
    app.include_router(clinic_settings.router, prefix="/api/v1", tags=["clinic-settings"])
    app.include_router(partners.router, prefix="/api/v1", tags=["partners"])

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": str(exc) if settings.log_level == "DEBUG" else "Internal server error",
            },
        )

    return app
