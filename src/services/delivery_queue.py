"""Paced, single-flight delivery queue for outbound messages.

The Graph API enforces per-page send rate limits. The queue serializes every
send through one drain task and waits a fixed pacing interval after each
attempt, so at most one request is in flight and throughput stays bounded.

Failures are isolated: a message that cannot be delivered is logged and
dropped, and the queue moves on. ``enqueue`` never reports the outcome back
to its caller.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from typing import Awaitable, Callable, Protocol

import logfire

from src.constants import MESSAGE_PACING_SECONDS, MESSAGE_PREVIEW_CHARS
from src.models.meta_models import DeliveryResult, OutboundMessage, QueueItem


class DeliveryClient(Protocol):
    """Anything that can deliver an OutboundMessage (MetaService in production)."""

    async def send_message(self, message: OutboundMessage) -> DeliveryResult:
        ...


class DeliveryQueue:
    """FIFO queue draining into a DeliveryClient one message at a time.

    The queue is either idle (no drain task) or draining (exactly one drain
    task pulling items). ``enqueue`` starts a drain task only when idle.

    Example:
        >>> queue = DeliveryQueue(MetaService())
        >>> queue.enqueue(OutboundMessage(recipient_id="123", text="Hi", access_token="..."))
        >>> queue.is_draining
        True
    """

    def __init__(
        self,
        client: DeliveryClient,
        pacing_seconds: float = MESSAGE_PACING_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the queue.

        Args:
            client: Delivery client used for every send.
            pacing_seconds: Wait after each send attempt before the next one.
            sleep: Awaitable sleep used for pacing.
        """
        self._client = client
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep
        self._items: deque[QueueItem] = deque()
        self._sequence = itertools.count()
        self._draining = False
        self._drain_task: asyncio.Task | None = None

    @property
    def is_draining(self) -> bool:
        """True while a drain task is running."""
        return self._draining

    def __len__(self) -> int:
        """Number of messages waiting to be dequeued."""
        return len(self._items)

    def enqueue(self, message: OutboundMessage) -> None:
        """Add a message to the queue and start draining if idle.

        Must be called from a running event loop.
        """
        item = QueueItem(sequence=next(self._sequence), message=message)
        self._items.append(item)
        logfire.debug(
            "Message queued",
            sequence=item.sequence,
            recipient_id=message.recipient_id,
            queue_length=len(self._items),
            log_id=message.log_id,
        )

        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.create_task(self._drain())

    async def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Wait for the current drain task to finish.

        Returns:
            True if the queue is idle, False if the timeout expired first.
        """
        task = self._drain_task
        if task is None or task.done():
            return not self._draining
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done) and not self._draining

    async def _drain(self) -> None:
        try:
            while self._items:
                item = self._items.popleft()
                await self._deliver(item)
                await self._sleep(self._pacing_seconds)
        finally:
            self._draining = False
            self._drain_task = None
            if self._items:
                logfire.warn(
                    "Delivery queue stopped with messages pending",
                    pending_count=len(self._items),
                )

    async def _deliver(self, item: QueueItem) -> None:
        message = item.message
        logfire.info(
            "Processing queued message",
            sequence=item.sequence,
            recipient_id=message.recipient_id,
            platform=message.platform.value,
            log_id=message.log_id,
        )
        try:
            result = await self._client.send_message(message)
        except Exception as e:
            logfire.error(
                "Failed to process queued message",
                sequence=item.sequence,
                recipient_id=message.recipient_id,
                platform=message.platform.value,
                message_preview=message.text[:MESSAGE_PREVIEW_CHARS],
                log_id=message.log_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        logfire.info(
            "Queued message delivered",
            sequence=item.sequence,
            recipient_id=message.recipient_id,
            message_id=result.message_id,
            log_id=message.log_id,
        )


def queue_message(
    queue: DeliveryQueue,
    recipient_id: str,
    text: str,
    access_token: str | None,
    instagram_account_id: str | None = None,
    log_id: str | None = None,
) -> None:
    """Convenience wrapper to queue a text message for sending.

    Args:
        queue: Delivery queue to add the message to
        recipient_id: Recipient's page-scoped (or Instagram-scoped) id
        text: Message text to send
        access_token: Page access token used for the send
        instagram_account_id: Instagram business account id for Instagram DMs
        log_id: Optional id for tracking the message in logs
    """
    queue.enqueue(
        OutboundMessage(
            recipient_id=recipient_id,
            text=text,
            access_token=access_token,
            instagram_account_id=instagram_account_id,
            log_id=log_id,
        )
    )


def build_delivery_queue(settings=None) -> DeliveryQueue:
    """Build a DeliveryQueue backed by MetaService from application settings."""
    from src.services.meta_service import get_meta_service

    if settings is None:
        from src.config import get_settings

        settings = get_settings()
    return DeliveryQueue(
        get_meta_service(settings),
        pacing_seconds=settings.message_pacing_seconds,
    )
