"""Meta webhook endpoints.

Handles the subscription handshake and incoming Messenger / Instagram events.

POST requests are acknowledged immediately; the body is parsed, normalized
and handed to the application's message handler in a background task after
the response has been sent, so slow business logic never delays the
acknowledgement (Meta retries deliveries whose acknowledgement is slow).
"""

import inspect
import json
import logging
from typing import Awaitable, Callable, NamedTuple

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import PlainTextResponse

from src.config import get_settings
from src.constants import MESSAGE_PREVIEW_CHARS, WEBHOOK_VERIFY_MODE
from src.logging_config import mask_pii
from src.models.meta_models import Platform, WebhookPayload
from src.services.event_normalizer import normalize_webhook_payload

logger = logging.getLogger(__name__)
router = APIRouter()

MessageHandler = Callable[[str, str, Platform], Awaitable[None] | None]


# Document the payload shape without validating it; bodies are read raw
_WEBHOOK_BODY_SCHEMA = {
    "requestBody": {
        "content": {"application/json": {"schema": WebhookPayload.model_json_schema()}}
    }
}


class VerificationOutcome(NamedTuple):
    """Status and plain-text body for a verification request."""

    status_code: int
    body: str


def verify_subscription(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str,
) -> VerificationOutcome:
    """Check a webhook subscription handshake.

    Succeeds only when ``mode`` is ``subscribe`` and ``token`` matches the
    configured verify token exactly; the challenge is then echoed back.
    """
    if mode == WEBHOOK_VERIFY_MODE and token == verify_token:
        return VerificationOutcome(200, challenge or "")
    return VerificationOutcome(403, "Forbidden")


@router.get("/meta")
@router.get("/meta/{routing_key}")
async def verify_webhook(request: Request, routing_key: str | None = None):
    """Meta webhook verification endpoint."""
    settings = get_settings()

    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge")

    logger.info(
        "Webhook verification attempt (mode=%s, token=%s, routing_key=%s)",
        mode,
        mask_pii(token),
        routing_key,
    )

    outcome = verify_subscription(mode, token, challenge, settings.meta_verify_token)
    if outcome.status_code == 200:
        logger.info("Webhook verified successfully")
    else:
        logger.warning("Webhook verification failed")

    return PlainTextResponse(outcome.body, status_code=outcome.status_code)


@router.post("/meta", openapi_extra=_WEBHOOK_BODY_SCHEMA)
@router.post("/meta/{routing_key}", openapi_extra=_WEBHOOK_BODY_SCHEMA)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    routing_key: str | None = None,
):
    """Acknowledge a webhook delivery and process it in the background."""
    body = await request.body()

    background_tasks.add_task(
        process_webhook_body,
        body,
        request.app.state.message_handler,
        routing_key=routing_key,
        correlation_id=getattr(request.state, "correlation_id", None),
    )

    return {"status": "ok"}


async def process_webhook_body(
    body: bytes,
    message_handler: MessageHandler,
    *,
    routing_key: str | None = None,
    correlation_id: str | None = None,
) -> None:
    """Parse a webhook body and dispatch every inbound message to the handler.

    Events are handled one at a time in payload order. Any failure is logged
    here and never propagates, since the delivery has already been
    acknowledged.

    Args:
        body: Raw request body
        message_handler: Callback receiving (recipient_id, text, platform);
                         may be sync or async
        routing_key: Optional path segment the webhook was delivered to
        correlation_id: Request correlation id for log tracing
    """
    try:
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning(
                "Ignoring webhook with invalid JSON body (correlation_id=%s)",
                correlation_id,
            )
            return

        entries = payload.get("entry") if isinstance(payload, dict) else None
        entry_count = len(entries) if isinstance(entries, list) else 0
        logger.info(
            "Webhook received (routing_key=%s, entries=%d, correlation_id=%s)",
            routing_key,
            entry_count,
            correlation_id,
        )
        if not entry_count:
            logger.warning("No entries in webhook payload")
            return

        for event in normalize_webhook_payload(payload):
            logger.info(
                "%s message received from %s: %s",
                event.platform.value.capitalize(),
                event.recipient_id,
                event.text[:MESSAGE_PREVIEW_CHARS],
            )
            result = message_handler(event.recipient_id, event.text, event.platform)
            if inspect.isawaitable(result):
                await result

    except Exception as e:
        logger.error(
            "Webhook processing error (correlation_id=%s): %s",
            correlation_id,
            e,
            exc_info=True,
        )
