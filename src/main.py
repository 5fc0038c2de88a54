# pyright: reportMissingTypeStubs=false
"""
Therapy Scheduling Backend API

A FastAPI application providing appointment scheduling for a therapy
practice.

Features:
- Appointment booking with double-booking protection
- Appointment lifecycle (confirm, start, complete, cancel, no-show)
- Practitioner slot availability
- Derived patient notifications (confirmations, reminders, care instructions)
- Session feedback
- PostgreSQL database with SQLAlchemy ORM, or an in-memory demo store
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, availability, feedback, notifications
from core.config import SchedulingSettings
from core.constants import CORS_ORIGINS
from core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SchedulingError,
    ValidationError,
)
from services.backend_factory import SchedulingBackend, build_backend

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)


# HTTP status for each domain error
ERROR_STATUS_CODES = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidTransitionError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Therapy Scheduling Backend API")

    if getattr(app.state, "backend", None) is None:
        settings: Optional[SchedulingSettings] = getattr(app.state, "settings", None)
        app.state.backend = build_backend(settings or SchedulingSettings.from_env())

    yield

    backend: SchedulingBackend = app.state.backend
    backend.close()
    logger.info("🛑 Shutting down Therapy Scheduling Backend API")


def create_app(
    settings: Optional[SchedulingSettings] = None,
    backend: Optional[SchedulingBackend] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Configuration used to build the backend at startup
            (defaults to the environment)
        backend: Prebuilt backend, used as-is (tests pass one in)
    """
    app = FastAPI(
        title="Therapy Scheduling Backend",
        description="Appointment scheduling and patient notifications for therapy practices",
        version="1.0.0",
        docs_url="/docs",  # Swagger UI
        redoc_url="/redoc",  # ReDoc
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend

    # CORS middleware for frontend integration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(
        appointments.router,
        prefix="/api/appointments",
        tags=["appointments"],
        responses={
            401: {"description": "Unauthorized"},
            403: {"description": "Forbidden"},
            404: {"description": "Resource not found"},
            409: {"description": "Conflict"},
            500: {"description": "Internal server error"},
        },
    )
    app.include_router(
        availability.router,
        prefix="/api",
        tags=["availability"],
        responses={
            400: {"description": "Bad request"},
            401: {"description": "Unauthorized"},
            500: {"description": "Internal server error"},
        },
    )
    app.include_router(
        notifications.router,
        prefix="/api/notifications",
        tags=["notifications"],
        responses={
            401: {"description": "Unauthorized"},
            403: {"description": "Forbidden"},
            404: {"description": "Resource not found"},
            500: {"description": "Internal server error"},
        },
    )
    app.include_router(
        feedback.router,
        prefix="/api",
        tags=["feedback"],
        responses={
            401: {"description": "Unauthorized"},
            403: {"description": "Forbidden"},
            404: {"description": "Resource not found"},
            409: {"description": "Conflict"},
            500: {"description": "Internal server error"},
        },
    )

    @app.get(
        "/",
        summary="Root endpoint",
        description="Returns basic API information",
    )
    async def root() -> dict[str, str]:
        """Get API information."""
        return {
            "message": "Therapy Scheduling Backend API",
            "version": "1.0.0",
            "status": "running"
        }

    @app.get(
        "/health",
        summary="Health check",
        description="Returns the health status of the API",
    )
    async def health_check() -> dict[str, str]:
        """Check if the API is healthy and responding."""
        return {"status": "healthy"}

    # Global exception handlers
    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        """Translate domain errors into HTTP responses."""
        status_code = next(
            (code for error_class, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_class)),
            500,
        )
        if status_code >= 500:
            logger.error(f"Unmapped scheduling error: {exc}")
        else:
            logger.info(f"{exc.error_type}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "type": exc.error_type},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Report malformed request bodies and parameters as 400."""
        logger.warning(f"Request validation failed: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_encoder(exc.errors()), "type": "validation_error"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle ValueError exceptions."""
        logger.warning(f"ValueError: {exc}")
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "type": "validation_error"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions globally."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "type": "internal_error"},
        )

    return app


app = create_app()
