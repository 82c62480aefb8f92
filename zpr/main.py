"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from zpr import __version__
from zpr.api import routes
from zpr.config.settings import settings
from zpr.database.db import check_db_connection, init_db
from zpr.errors import (
    CredentialExchangeError,
    DuplicateReviewError,
    PreconditionError,
    ReconciliationMatchError,
)
from zpr.utils.logging import setup_observability

# Setup logging and observability
setup_observability()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting ZPR reviewer in {settings.environment} environment")
    logger.info(
        f"Repository provider: {settings.repo_provider}, "
        f"model provider: {settings.llm_provider}, "
        f"{len(settings.repositories)} repositories configured"
    )

    # Initialise database tables
    logger.info("Initializing database...")
    init_db()
    check_db_connection()
    logger.info("Database initialized and connected successfully")

    yield

    # Shutdown
    logger.info("Shutting down ZPR reviewer")
    await routes.close_shared_clients()


# Create FastAPI app
app = FastAPI(
    title="ZPR",
    description="Automated pull request reviewer backed by a language model",
    version=__version__,
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire if configured
if settings.logfire_token:
    import logfire

    logfire.instrument_fastapi(app)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(routes.router)


# === EXCEPTION HANDLERS ===


@app.exception_handler(DuplicateReviewError)
async def duplicate_review_handler(
    request: Request, exc: DuplicateReviewError
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"message": str(exc)})


@app.exception_handler(PreconditionError)
async def precondition_handler(request: Request, exc: PreconditionError) -> JSONResponse:
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"message": str(exc)}
    )


@app.exception_handler(ReconciliationMatchError)
async def reconciliation_match_handler(
    request: Request, exc: ReconciliationMatchError
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"message": str(exc)})


@app.exception_handler(CredentialExchangeError)
async def credential_exchange_handler(
    request: Request, exc: CredentialExchangeError
) -> JSONResponse:
    logger.error(f"Credential exchange failed (status {exc.status_code}): {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY, content={"message": str(exc)}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "Requested route does not exist"
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": message},
        headers=getattr(exc, "headers", None),
    )


# === SERVICE ENDPOINTS ===


@app.get("/health")
async def health_check() -> dict[str, str | bool]:
    """Health check endpoint with configuration status."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": __version__,
        "repo_provider": settings.repo_provider,
        "llm_provider": settings.llm_provider,
        "logfire_enabled": bool(settings.logfire_token),
    }


@app.get("/database")
async def database() -> dict[str, str | bool]:
    """Database connection health check endpoint."""
    db_connected = check_db_connection()
    return {
        "database_connected": db_connected,
        "database_url": settings.database_url.split("@")[-1],  # Hide credentials
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "ZPR pull request reviewer API",
        "docs": "/docs",
        "health": "/health",
        "database": "/database",
        "review": "/review",
        "re_review": "/re-review",
    }
