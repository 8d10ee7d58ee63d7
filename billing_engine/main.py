"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing_engine.config import Config, get_config
from billing_engine.logging_config import configure_logging, get_logger
from billing_engine.middleware import ContextMiddleware, RequestLoggingMiddleware
from billing_engine.services.container import BillingServices

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the dunning worker on startup, release everything on shutdown."""
    services: BillingServices = app.state.billing
    logger.info("billing_engine_starting", version=VERSION)

    try:
        services.start()
        logger.info(
            "billing_engine_started",
            status="ready",
            dunning_worker=services.worker is not None,
        )
        yield
    finally:
        logger.info("billing_engine_shutting_down")
        services.shutdown()
        logger.info("billing_engine_stopped")


def create_app(config: Optional[Config] = None, services: Optional[BillingServices] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded configuration (global config by default)
        services: Prebuilt service graph (built from config by default)

    Returns:
        Configured FastAPI application instance
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    if services is None:
        services = BillingServices.from_config(config or get_config())

    app = FastAPI(
        title="Subscription Billing Engine",
        description="Payment webhook reconciliation and dunning for subscriptions",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.billing = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from billing_engine.api.checkout import router as checkout_router
    from billing_engine.api.webhooks import router as webhooks_router

    app.include_router(webhooks_router)
    app.include_router(checkout_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "subscription-billing-engine",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health() -> dict:
        """Detailed health check."""
        billing: BillingServices = app.state.billing
        notifier_enabled = getattr(billing.notifier, "is_enabled", lambda: False)()
        return {
            "status": "healthy",
            "notifications": "connected" if notifier_enabled else "disabled",
            "dunning_worker": "running" if billing.worker and billing.worker.is_running else "stopped",
            "config": f"loaded ({len(billing.plan_repository)} plans)",
            "subscriptions": billing.store.get_statistics(),
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
