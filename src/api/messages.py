"""Outbound messaging and page lookup endpoints.

Thin HTTP wrappers for operators: queue a message with the configured page
token, and inspect page / Instagram account metadata.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.config import get_settings
from src.models.meta_models import SendMessageRequest
from src.services.delivery_queue import DeliveryQueue, build_delivery_queue, queue_message
from src.services.meta_service import MetaLookupError, MetaService, get_meta_service

logger = logging.getLogger(__name__)
router = APIRouter()


def get_delivery_queue(request: Request) -> DeliveryQueue:
    """Return the app's delivery queue, creating it on first use."""
    queue = getattr(request.app.state, "delivery_queue", None)
    if queue is None:
        queue = build_delivery_queue(get_settings())
        request.app.state.delivery_queue = queue
    return queue


def get_service() -> MetaService:
    return get_meta_service(get_settings())


def _require_access_token() -> str:
    token = get_settings().meta_access_token
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Meta access token not configured",
        )
    return token


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def send_message(
    body: SendMessageRequest,
    queue: DeliveryQueue = Depends(get_delivery_queue),
):
    """Queue a text message for delivery."""
    access_token = _require_access_token()

    queue_message(
        queue,
        recipient_id=body.recipient_id,
        text=body.text,
        access_token=access_token,
        instagram_account_id=body.instagram_account_id,
    )
    logger.info("Message queued for %s (pending=%d)", body.recipient_id, len(queue))
    return {"status": "queued"}


@router.get("/pages/{page_id}")
async def page_info(page_id: str, service: MetaService = Depends(get_service)):
    """Fetch page metadata."""
    access_token = _require_access_token()
    try:
        info = await service.get_page_info(page_id, access_token)
    except MetaLookupError as e:
        logger.error("Page lookup failed for %s: %s", page_id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to get page info",
        ) from e
    return info.model_dump(exclude={"access_token"}, exclude_none=True)


@router.get("/pages/{page_id}/instagram-account")
async def instagram_account(page_id: str, service: MetaService = Depends(get_service)):
    """Fetch the Instagram business account linked to a page."""
    access_token = _require_access_token()
    account_id = await service.get_instagram_account_id(page_id, access_token)
    return {"page_id": page_id, "instagram_account_id": account_id}
