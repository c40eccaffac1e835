"""Webhook Gateway: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# Logging MUST be configured before all other gateway imports
# (structlog caches the processor chain on first use).
from gateway.core.config import get_settings
from gateway.core.logging import configure_logging

configure_logging(get_settings())

import structlog

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from gateway.api.routes import api_router
from gateway.core.config import Settings
from gateway.core.exceptions import GatewayError
from gateway.db import close_db, init_db
from gateway.middleware.correlation import get_correlation_id, setup_correlation_middleware
from gateway.services.subscriptions import CustomerOwnerResolver
from gateway.webhooks.dispatcher import build_clerk_dispatcher, build_stripe_dispatcher
from gateway.webhooks.signatures import StripeSignatureVerifier, SvixSignatureVerifier

logger = structlog.get_logger(__name__)


def configure_webhooks(app: FastAPI, settings: Settings) -> None:
    """Build verifiers and dispatchers once from settings and pin them on app.state.

    A provider whose secret is unset gets no verifier; its endpoint answers 500.
    """
    tolerance = settings.webhook_tolerance_seconds

    app.state.clerk_verifier = (
        SvixSignatureVerifier(settings.clerk_webhook_secret, tolerance_seconds=tolerance)
        if settings.clerk_webhook_secret
        else None
    )
    app.state.stripe_verifier = (
        StripeSignatureVerifier(settings.stripe_webhook_secret, tolerance_seconds=tolerance)
        if settings.stripe_webhook_secret
        else None
    )
    app.state.clerk_dispatcher = build_clerk_dispatcher()
    app.state.stripe_dispatcher = build_stripe_dispatcher(CustomerOwnerResolver(settings.stripe_secret_key))

    if app.state.clerk_verifier is None:
        logger.warning("clerk_webhook_secret_not_configured")
    if app.state.stripe_verifier is None:
        logger.warning("stripe_webhook_secret_not_configured")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the health check returns 503 while draining
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings: Settings = app.state.settings
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db(settings.database_url, echo=settings.debug)
    logger.info("db_initialized")

    yield

    logger.info("shutdown_begin")
    await close_db()
    logger.info("shutdown_complete")


async def gateway_exception_handler(request: Request, exc: GatewayError) -> PlainTextResponse:
    """Map gateway errors to plain-text responses.

    The provider only sees the public message; the full error is logged with
    a debug_id.
    """
    debug_id = str(uuid.uuid4())

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "webhook_rejected",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return PlainTextResponse(
        exc.response_text,
        status_code=exc.status_code,
        headers={"X-Debug-ID": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # No internal details leaked
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Verified ingestion of Clerk and Stripe webhooks",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    configure_webhooks(app, settings)

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    # Exception handlers
    app.exception_handler(GatewayError)(gateway_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router)

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
