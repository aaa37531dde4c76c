"""
Tutoring Scheduler API

FastAPI application entry point that exposes the recurring schedule engine.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.config import settings
from app.api.routes import health, schedule
from app.core.scheduling import (
    InvalidRuleError,
    RecurrenceDisabledError,
    RepositoryUnavailable,
    get_calendar_client,
)


def setup_logging() -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    logger.info(
        f"Schedule engine: timezone={settings.timezone}, "
        f"recurring_enabled={settings.recurring_enabled}, "
        f"conflict_policy={settings.conflict_degrade_policy}"
    )

    # Set health check start time
    health.set_start_time()

    logger.info(f"Application ready at http://{settings.host}:{settings.port}")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down application...")

    await get_calendar_client().close()
    logger.info("Calendar client closed")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Tutoring Scheduler API",
    description="""
    Recurring schedule engine for a conversational tutoring assistant.

    ## Features
    - 📅 Daily, weekly and monthly (BYMONTHDAY) recurring sessions
    - 🔁 Occurrences computed on demand, never stored
    - ⚠️ First-occurrence conflict checks at intake, exact overlap at sync
    - 🗓️ RRULE descriptors for external calendar sync
    """,
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without non-serializable context values."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.exception_handler(InvalidRuleError)
async def invalid_rule_handler(
    request: Request,
    exc: InvalidRuleError,
) -> JSONResponse:
    """Malformed rules are the user's to fix; always reported."""
    logger.info(f"Invalid rule: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Invalid rule",
            "detail": str(exc),
            "field": exc.field,
        },
    )


@app.exception_handler(RecurrenceDisabledError)
async def recurrence_disabled_handler(
    request: Request,
    exc: RecurrenceDisabledError,
) -> JSONResponse:
    """Recurring sessions requested while the feature is off."""
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "error": "Recurring sessions disabled",
            "detail": str(exc),
        },
    )


@app.exception_handler(RepositoryUnavailable)
async def repository_unavailable_handler(
    request: Request,
    exc: RepositoryUnavailable,
) -> JSONResponse:
    """Existing sessions missing under the blocking conflict policy."""
    logger.warning(f"Repository unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "Existing sessions unavailable",
            "detail": str(exc),
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    detail = str(exc) if settings.is_development else "Internal server error"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": detail,
        },
    )


@app.middleware("http")
async def request_lifecycle_middleware(request: Request, call_next):
    """Log request duration in debug mode."""
    start_time = time.time()

    try:
        response = await call_next(request)
        return response
    finally:
        if settings.debug:
            duration = time.time() - start_time
            logger.debug(
                f"{request.method} {request.url.path} "
                f"completed in {duration:.3f}s"
            )


# Health check routes
app.include_router(health.router)

# Schedule engine routes
app.include_router(schedule.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.app_env,
        "recurring_enabled": settings.recurring_enabled,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
