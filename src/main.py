"""FastAPI application initialization."""

import os
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration

from src.api import health, messages, webhook
from src.api.webhook import MessageHandler
from src.config import get_settings
from src.constants import GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS, MESSAGE_PREVIEW_CHARS
from src.logging_config import setup_logfire
from src.middleware.correlation_id import CorrelationIDMiddleware
from src.models.meta_models import Platform
from src.services.delivery_queue import DeliveryQueue, build_delivery_queue

APP_VERSION = "0.1.0"


async def log_inbound_message(recipient_id: str, text: str, platform: Platform) -> None:
    """Default message handler: record the message and do nothing else."""
    logfire.info(
        "Inbound message received",
        recipient_id=recipient_id,
        platform=platform.value,
        message_preview=text[:MESSAGE_PREVIEW_CHARS],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager with graceful shutdown support."""
    settings = get_settings()

    # Initialize Logfire for observability
    setup_logfire(app)

    # Initialize Sentry if DSN is provided
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
            integrations=[FastApiIntegration()],
        )

    if getattr(app.state, "delivery_queue", None) is None:
        app.state.delivery_queue = build_delivery_queue(settings)

    logfire.info(
        "Application startup complete",
        environment=settings.env,
        pacing_seconds=settings.message_pacing_seconds,
    )

    yield

    # ==========================================================================
    # Graceful Shutdown
    # ==========================================================================
    queue: DeliveryQueue = app.state.delivery_queue
    logfire.info(
        "Application shutdown initiated",
        pending_messages=len(queue),
        draining=queue.is_draining,
    )

    if queue.is_draining:
        idle = await queue.wait_until_idle(timeout=GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS)
        if idle:
            logfire.info("Delivery queue drained before shutdown")
        else:
            logfire.warn(
                "Delivery queue still draining after timeout",
                pending_messages=len(queue),
                timeout_seconds=GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS,
            )

    logfire.info("Application shutdown complete")


def create_app(
    message_handler: MessageHandler | None = None,
    delivery_queue: DeliveryQueue | None = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        message_handler: Called with (recipient_id, text, platform) for every
                         inbound message. Defaults to logging the message.
        delivery_queue: Queue used by the outbound endpoints. Built from
                        settings on first use when not provided.
    """
    application = FastAPI(
        title="Meta DM Relay",
        description="Messenger and Instagram Direct message relay",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    application.state.message_handler = message_handler or log_inbound_message
    application.state.delivery_queue = delivery_queue

    # Correlation ID middleware (request tracing)
    application.add_middleware(CorrelationIDMiddleware)

    application.include_router(health.router, tags=["health"])
    application.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
    application.include_router(messages.router, prefix="/api", tags=["messages"])

    @application.get("/")
    def root():
        """Root endpoint."""
        return {"message": "Meta DM Relay API", "version": APP_VERSION}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=port, reload=os.getenv("ENV") == "local"
    )
