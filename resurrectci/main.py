# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import structlog

from resurrectci.core.config import settings
from resurrectci.core.schemas.common import HealthResponse
from resurrectci.dependencies import get_monitor_service, set_monitor_service
from resurrectci.exceptions import (
    ResurrectCIException,
    DeploymentNotFoundError,
    DeploymentErrorNotFoundError,
    ActionNotFoundError,
    InvalidStateTransitionError,
    RateLimitExceededError,
    ConfigurationError,
    ExternalServiceError,
)
from resurrectci.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from resurrectci.utils.logging import configure_logging

configure_logging(settings)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "application_startup",
        environment=settings.environment.value,
        version=settings.version,
        monitor_on_startup=settings.monitor_on_startup,
    )

    monitor = get_monitor_service()
    if settings.monitor_on_startup:
        monitor.start_monitoring()

    yield

    logger.info("application_shutdown")
    await monitor.close()
    set_monitor_service(None)


app = FastAPI(
    title="ResurrectCI",
    description="Autonomous AI agent that detects, analyzes, and resolves deployment failures",
    version=settings.version,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

# Applied in reverse order: request ID first, then logging, then CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)
app.add_middleware(RequestLoggingMiddleware, exclude_paths=["/health"])
app.add_middleware(RequestIDMiddleware)


def status_code_for(exc: ResurrectCIException) -> int:
    if isinstance(exc, (DeploymentNotFoundError, DeploymentErrorNotFoundError, ActionNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidStateTransitionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RateLimitExceededError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(exc, ConfigurationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ExternalServiceError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "validation_error",
        request_id=request_id,
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.exception_handler(ResurrectCIException)
async def resurrectci_exception_handler(request: Request, exc: ResurrectCIException):
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "application_error",
        request_id=request_id,
        error_code=exc.error_code,
        error=str(exc),
        details=exc.details,
    )

    return JSONResponse(
        status_code=status_code_for(exc),
        content={
            **exc.to_dict(),
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        request_id=request_id,
        path=request.url.path,
        error=str(exc),
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An internal server error occurred. Please contact support with the request ID.",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Health check",
)
async def health_check():
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.version,
        monitoring=get_monitor_service().is_monitoring,
    )


@app.get(
    "/",
    tags=["Root"],
    summary="Root endpoint",
)
async def root():
    return {
        "name": "ResurrectCI API",
        "version": settings.version,
        "environment": settings.environment.value,
        "description": "Autonomous AI agent for deployment failure remediation",
        "links": {
            "docs": "/docs" if not settings.is_production else None,
            "health": "/health",
            "api": "/api/v1",
        },
        "endpoints": {
            "deployments": "/api/v1/deployments",
            "monitoring": "/api/v1/monitoring",
            "automation": "/api/v1/automation",
        },
    }


from resurrectci.api.v1.deployments import router as deployments_router
from resurrectci.api.v1.monitoring import router as monitoring_router

app.include_router(
    deployments_router,
    prefix="/api/v1",
    tags=["Deployments"],
)

app.include_router(
    monitoring_router,
    prefix="/api/v1",
    tags=["Monitoring"],
)
