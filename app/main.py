"""FastAPI application for the premium generation credits service.

This module provides the application with health endpoints, API routes,
exception handlers and lifecycle management. The database handle and the
services built on it are created in the lifespan and stored on
``app.state``; nothing is a process-wide singleton.

Run with:
    uvicorn app.main:app --reload

Examples:
    >>> # Health check
    >>> curl http://localhost:8000/health

Tests:
    - tests/integration/test_api_main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.api.v1 import router as v1_router
from app.config import Settings, get_settings
from app.database import Database
from app.services.billing import PaymentVerifier, build_verifier
from app.services.gate import AuthorizationGate
from app.services.jobs import JobStore
from app.services.ledger import CreditLedger, LedgerUnavailable
from app.services.pipeline import GenerationPipeline, load_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Response models
class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: bool
    payments: bool


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str
    detail: str | None = None


def install_services(
    app: FastAPI,
    *,
    settings: Settings,
    db: Database,
    verifier: PaymentVerifier | None,
    pipeline: GenerationPipeline,
    jobs: JobStore | None = None,
) -> None:
    """Wire the ledger, gate, job store and pipeline onto ``app.state``."""
    ledger = CreditLedger(db, default_count=settings.CREDITS_PER_PURCHASE)
    app.state.settings = settings
    app.state.db = db
    app.state.ledger = ledger
    app.state.verifier = verifier
    app.state.gate = AuthorizationGate(
        ledger,
        verifier,
        verify_timeout=settings.PAYMENT_VERIFY_TIMEOUT,
    )
    app.state.jobs = jobs if jobs is not None else JobStore()
    app.state.pipeline = pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Opens the database and builds services on startup, closes the
    database on shutdown.
    """
    settings = app.state.settings
    logger.info(f"Starting credits service v{__version__}")

    db = Database(settings.DATABASE_URL)
    db.open()
    await db.create_all()

    install_services(
        app,
        settings=settings,
        db=db,
        verifier=build_verifier(settings),
        pipeline=load_pipeline(settings.PIPELINE_FACTORY),
    )

    yield

    logger.info("Shutting down credits service")
    await db.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the cached environment settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Review Generator Credits",
        description="Premium credit ledger and authorization for review generation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.DEBUG else settings.CORS_ORIGINS,
        allow_credentials=not settings.DEBUG,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router)

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with consistent response format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "detail": getattr(exc, "details", None)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Handle malformed query/path parameters."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "detail": str(exc.errors())},
        )

    @app.exception_handler(LedgerUnavailable)
    async def ledger_unavailable_handler(request, exc: LedgerUnavailable):
        """Ledger outages are the one expected 500."""
        logger.error(f"Ledger unavailable: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Credit ledger unavailable", "detail": None},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception(f"Unexpected error: {exc}")
        detail = str(exc) if settings.DEBUG else None
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "detail": detail},
        )

    # Health endpoints
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Check database reachability and payment configuration."""
        db: Database | None = getattr(app.state, "db", None)
        db_healthy = await db.ping() if db is not None else False

        return HealthResponse(
            status="healthy" if db_healthy else "degraded",
            version=__version__,
            database=db_healthy,
            payments=getattr(app.state, "verifier", None) is not None,
        )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with basic info."""
        return {
            "name": "Review Generator Credits",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


# Entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().DEBUG,
    )
