"""Messenger / Instagram message models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Chat platform a message travels on."""

    MESSENGER = "messenger"
    INSTAGRAM = "instagram"


class OutboundMessage(BaseModel):
    """A text message to deliver through the Graph API.

    Routing depends only on ``instagram_account_id``: when set, the message
    goes to the Instagram endpoint scoped to that account, otherwise to the
    page's own Messenger endpoint.
    """

    recipient_id: str = Field(..., min_length=1, description="PSID / IGSID")
    text: str = Field(..., min_length=1, description="Message text to send")
    access_token: str | None = Field(
        default=None, description="Page access token, supplied per send"
    )
    instagram_account_id: str | None = Field(
        default=None, description="Instagram business account id (optional)"
    )
    log_id: str | None = Field(
        default=None, description="Caller tracking id, only echoed in logs"
    )

    @property
    def platform(self) -> Platform:
        return Platform.INSTAGRAM if self.instagram_account_id else Platform.MESSENGER


class InboundEvent(BaseModel):
    """Canonical inbound message extracted from a webhook payload."""

    model_config = ConfigDict(frozen=True)

    recipient_id: str
    text: str
    platform: Platform


class QueueItem(BaseModel):
    """Outbound message wrapped with its arrival order in the delivery queue."""

    sequence: int
    message: OutboundMessage


class DeliveryResult(BaseModel):
    """Successful send acknowledgement from the Graph API."""

    message_id: str
    recipient_id: str | None = None


class InstagramBusinessAccount(BaseModel):
    """Instagram business account linked to a page."""

    id: str


class PageInfo(BaseModel):
    """Facebook page metadata."""

    id: str
    name: str | None = None
    access_token: str | None = None
    instagram_business_account: InstagramBusinessAccount | None = None


class WebhookPayload(BaseModel):
    """Meta webhook payload.

    Referenced by ``_WEBHOOK_BODY_SCHEMA`` in ``src/api/webhook.py`` to document
    the POST body in the OpenAPI schema. Bodies are never validated against it;
    entries are normalized from raw JSON so that payload drift never fails.
    """

    object: str
    entry: list[dict] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    """Body of ``POST /api/messages``."""

    recipient_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    instagram_account_id: str | None = None
