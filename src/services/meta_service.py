"""Send messages and look up page metadata through the Meta Graph API."""

import time
from typing import Any

import httpx
import logfire
from pydantic import ValidationError

from src.constants import (
    FACEBOOK_GRAPH_BASE_URL,
    INSTAGRAM_GRAPH_BASE_URL,
    MESSAGE_PREVIEW_CHARS,
    META_LOOKUP_TIMEOUT_SECONDS,
    META_SEND_TIMEOUT_SECONDS,
    RESPONSE_BODY_LOG_CHARS,
    WEBHOOK_SUBSCRIBED_FIELDS,
)
from src.models.meta_models import DeliveryResult, OutboundMessage, PageInfo, Platform


class MetaServiceError(Exception):
    """Base exception for Meta Graph API errors."""

    pass


class DeliveryError(MetaServiceError):
    """Raised when a message could not be delivered."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.platform = platform


class MissingCredentialError(DeliveryError):
    """Raised when a send is attempted without an access token."""

    pass


class MetaLookupError(MetaServiceError):
    """Raised when a page metadata lookup fails."""

    pass


def _provider_error_message(response: httpx.Response) -> str | None:
    """Extract ``error.message`` from a Graph API error body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


class MetaService:
    """Client for the Graph API endpoints the relay uses.

    Supports both Facebook Messenger and Instagram Direct messages. Access
    tokens are passed on every call and never stored on the client.

    Example:
        >>> service = MetaService()
        >>> await service.send_message(
        ...     OutboundMessage(recipient_id="123", text="Hi", access_token="...")
        ... )
        DeliveryResult(message_id='m_abc', recipient_id='123')
    """

    def __init__(
        self,
        graph_base_url: str = FACEBOOK_GRAPH_BASE_URL,
        instagram_base_url: str = INSTAGRAM_GRAPH_BASE_URL,
        send_timeout_seconds: float = META_SEND_TIMEOUT_SECONDS,
        lookup_timeout_seconds: float = META_LOOKUP_TIMEOUT_SECONDS,
    ):
        self._graph_base_url = graph_base_url.rstrip("/")
        self._instagram_base_url = instagram_base_url.rstrip("/")
        self._send_timeout = send_timeout_seconds
        self._lookup_timeout = lookup_timeout_seconds

    def message_url(self, instagram_account_id: str | None) -> str:
        """Resolve the send endpoint.

        Instagram messages go to the linked business account; everything else
        goes to the page's own ``/me/messages`` endpoint.
        """
        if instagram_account_id:
            return f"{self._instagram_base_url}/{instagram_account_id}/messages"
        return f"{self._graph_base_url}/me/messages"

    async def send_message(self, message: OutboundMessage) -> DeliveryResult:
        """
        Send a text message via Messenger or Instagram.

        Args:
            message: Recipient, text, access token and optional Instagram
                account id

        Returns:
            DeliveryResult with the provider message id

        Raises:
            MissingCredentialError: No access token on the message
            DeliveryError: Provider rejected the send or the request failed
        """
        platform = message.platform
        if not message.access_token:
            logfire.error(
                "Meta send attempted without access token",
                recipient_id=message.recipient_id,
                platform=platform.value,
                log_id=message.log_id,
            )
            raise MissingCredentialError(
                "Meta access token not configured", platform=platform
            )

        url = self.message_url(message.instagram_account_id)
        payload = {
            "recipient": {"id": message.recipient_id},
            "message": {"text": message.text},
        }
        headers = {
            "Authorization": f"Bearer {message.access_token}",
            "Content-Type": "application/json",
        }

        start_time = time.time()
        logfire.info(
            "Sending Meta message",
            recipient_id=message.recipient_id,
            message_preview=message.text[:MESSAGE_PREVIEW_CHARS],
            platform=platform.value,
            log_id=message.log_id,
        )

        try:
            async with httpx.AsyncClient(timeout=self._send_timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            elapsed = time.time() - start_time
            logfire.error(
                "Meta API request error",
                recipient_id=message.recipient_id,
                platform=platform.value,
                error=str(e),
                error_type=type(e).__name__,
                response_time_ms=elapsed * 1000,
            )
            raise DeliveryError(
                f"Failed to send Meta message: {str(e) or type(e).__name__}",
                platform=platform,
            ) from e

        elapsed = time.time() - start_time

        if response.is_error:
            provider_message = _provider_error_message(response)
            logfire.error(
                "Meta message send failed",
                recipient_id=message.recipient_id,
                platform=platform.value,
                status_code=response.status_code,
                response_body=response.text[:RESPONSE_BODY_LOG_CHARS],
                response_time_ms=elapsed * 1000,
            )
            reason = provider_message or response.reason_phrase or "HTTP error"
            raise DeliveryError(
                f"Failed to send Meta message: {reason}",
                status_code=response.status_code,
                platform=platform,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        message_id = data.get("message_id") if isinstance(data, dict) else None
        if not message_id:
            logfire.error(
                "Meta response missing message_id",
                recipient_id=message.recipient_id,
                platform=platform.value,
                response_body=response.text[:RESPONSE_BODY_LOG_CHARS],
            )
            raise DeliveryError(
                "Failed to send Meta message: response missing message_id",
                status_code=response.status_code,
                platform=platform,
            )

        logfire.info(
            "Meta message sent successfully",
            recipient_id=message.recipient_id,
            message_id=message_id,
            message_preview=message.text[:MESSAGE_PREVIEW_CHARS],
            platform=platform.value,
            response_time_ms=elapsed * 1000,
        )
        # The send has succeeded at this point; coerce non-string ids
        recipient_id = data.get("recipient_id")
        return DeliveryResult(
            message_id=str(message_id),
            recipient_id=None if recipient_id is None else str(recipient_id),
        )

    async def get_page_info(self, page_id: str, access_token: str) -> PageInfo:
        """
        Get Facebook page information.

        Args:
            page_id: Facebook Page ID
            access_token: Page access token

        Returns:
            PageInfo with id, name and page access token
        """
        data = await self._get_page_fields(page_id, access_token, "name,id,access_token")
        try:
            return PageInfo.model_validate(data)
        except ValidationError as e:
            raise MetaLookupError("Failed to retrieve page information") from e

    async def get_instagram_account_id(
        self, page_id: str, access_token: str
    ) -> str | None:
        """Get the Instagram business account linked to a page, or None."""
        try:
            data = await self._get_page_fields(
                page_id, access_token, "instagram_business_account"
            )
        except MetaLookupError:
            return None

        account = data.get("instagram_business_account")
        if isinstance(account, dict) and account.get("id"):
            return str(account["id"])
        return None

    async def subscribe_to_webhook(
        self, page_id: str, access_token: str
    ) -> dict[str, Any]:
        """Subscribe the app to a page's message webhook events."""
        url = f"{self._graph_base_url}/{page_id}/subscribed_apps"
        try:
            async with httpx.AsyncClient(timeout=self._lookup_timeout) as client:
                response = await client.post(
                    url,
                    params={"access_token": access_token},
                    json={"subscribed_fields": WEBHOOK_SUBSCRIBED_FIELDS},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logfire.error(
                "Failed to subscribe to webhook",
                page_id=page_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MetaLookupError("Failed to subscribe to webhook") from e

        logfire.info("Subscribed to page webhook", page_id=page_id)
        return data

    async def _get_page_fields(
        self, page_id: str, access_token: str, fields: str
    ) -> dict[str, Any]:
        url = f"{self._graph_base_url}/{page_id}"
        params = {"access_token": access_token, "fields": fields}
        try:
            async with httpx.AsyncClient(timeout=self._lookup_timeout) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logfire.error(
                "Failed to get page fields",
                page_id=page_id,
                fields=fields,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MetaLookupError("Failed to retrieve page information") from e

        if not isinstance(data, dict):
            raise MetaLookupError("Failed to retrieve page information")
        return data


def get_meta_service(settings=None) -> MetaService:
    """Build a MetaService from application settings."""
    if settings is None:
        from src.config import get_settings

        settings = get_settings()
    return MetaService(
        graph_base_url=settings.meta_graph_base_url,
        instagram_base_url=settings.meta_instagram_base_url,
        send_timeout_seconds=settings.meta_send_timeout_seconds,
        lookup_timeout_seconds=settings.meta_lookup_timeout_seconds,
    )
