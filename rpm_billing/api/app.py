"""FastAPI application for the billing engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rpm_billing import __version__
from rpm_billing.api.middleware import APIKeyMiddleware, RequestLoggingMiddleware
from rpm_billing.api.routes import billing, health
from rpm_billing.config import get_settings
from rpm_billing.exceptions import (
    AuthorizationError,
    BillingError,
    InvalidAggregateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting billing API")

    from rpm_billing.core.database import close_db, init_db

    await init_db()

    logger.info("Billing API started successfully")

    yield

    logger.info("Shutting down billing API")
    await close_db()


# Engine errors that are the caller's fault, with their HTTP status and label
_CLIENT_ERRORS: dict[type[BillingError], tuple[int, str]] = {
    ValidationError: (422, "Validation error"),
    AuthorizationError: (403, "Forbidden"),
    NotFoundError: (404, "Not found"),
}


def _server_error(label: str, exc: Exception) -> JSONResponse:
    detail = str(exc) if get_settings().debug_mode else None
    return JSONResponse(status_code=500, content={"error": label, "detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    """Map engine exceptions to HTTP responses."""

    async def client_error_handler(request: Request, exc: BillingError):
        status_code, label = next(v for t, v in _CLIENT_ERRORS.items() if isinstance(exc, t))
        return JSONResponse(status_code=status_code, content={"error": label, "detail": str(exc)})

    for exc_type in _CLIENT_ERRORS:
        app.add_exception_handler(exc_type, client_error_handler)

    @app.exception_handler(InvalidAggregateError)
    async def invalid_aggregate_handler(request: Request, exc: InvalidAggregateError):
        # Negative totals mean an upstream data bug, not a bad request
        logger.error("Invalid billing aggregate on %s: %s", request.url.path, exc)
        return _server_error("Invalid billing data", exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s", request.url.path)
        return _server_error("Internal server error", exc)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="RPM Billing API",
        description="Remote monitoring and care management billing eligibility",
        version=__version__,
        lifespan=lifespan,
    )

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
    app.include_router(billing.router, prefix="/api/v1", tags=["billing"])

    register_exception_handlers(app)

    return app
