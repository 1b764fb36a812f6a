"""Main FastAPI application."""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from naafe import __version__
from naafe.config import settings
from naafe.core.errors import NaafeError
from naafe.core.logging import configure_logging
from naafe.api import users, job_requests, offers, payments, notifications, events

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Naafe' API",
    version=__version__,
    description="Services marketplace: seekers post job requests, providers negotiate offers"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    users.router,
    prefix=f"{settings.API_V1_PREFIX}/users",
    tags=["users"]
)
app.include_router(
    job_requests.router,
    prefix=f"{settings.API_V1_PREFIX}/job-requests",
    tags=["job-requests"]
)
app.include_router(
    offers.router,
    prefix=f"{settings.API_V1_PREFIX}",
)
app.include_router(
    payments.router,
    prefix=f"{settings.API_V1_PREFIX}",
)
app.include_router(
    notifications.router,
    prefix=f"{settings.API_V1_PREFIX}/notifications",
    tags=["notifications"]
)
app.include_router(
    events.router,
    prefix=f"{settings.API_V1_PREFIX}",
    tags=["events"]
)


@app.on_event("startup")
async def startup():
    """Application startup tasks."""
    configure_logging()
    logger.info(f"Naafe' API starting (environment: {settings.ENVIRONMENT})")


@app.on_event("shutdown")
async def shutdown():
    """Application shutdown tasks."""
    logger.info("Naafe' API shutting down")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Naafe' API",
        "version": __version__,
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }


@app.exception_handler(NaafeError)
async def domain_exception_handler(request: Request, exc: NaafeError):
    """Translate domain errors into the stable error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors and answer without leaking details."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}
    )
