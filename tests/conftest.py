"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: mock_settings, mock_logfire, logfire_capture, test_client
2. Payloads: messenger_payload, instagram_nested_payload, instagram_flat_payload
3. Delivery fakes: fake_delivery_client, outbound_message
"""

import asyncio
import os
import time
from contextlib import contextmanager
from unittest.mock import MagicMock, Mock, patch

import pytest

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")
os.environ.setdefault("META_VERIFY_TOKEN", "test-verify-token")

from src.models.meta_models import DeliveryResult, OutboundMessage
from src.services.meta_service import DeliveryError


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock application settings."""
    from src.config import Settings

    settings = Settings(
        meta_verify_token="test-verify-token",
        meta_access_token="test-page-token",
        env="local",
        logfire_token=None,
        sentry_dsn=None,
        message_pacing_seconds=0.0,
    )

    monkeypatch.setattr("src.config.get_settings", lambda: settings)
    # Patch where get_settings is used so request handlers see the mock
    monkeypatch.setattr("src.api.webhook.get_settings", lambda: settings)
    monkeypatch.setattr("src.api.messages.get_settings", lambda: settings)
    monkeypatch.setattr("src.main.get_settings", lambda: settings)
    monkeypatch.setattr("src.logging_config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Mock Logfire for testing without actual logging.

    Useful for tests that don't need to verify logging behavior.
    """

    @contextmanager
    def mock_span(*args, **kwargs):
        yield {}

    mock_logfire_module = MagicMock()
    mock_logfire_module.debug = Mock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warn = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = mock_span
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()
    mock_logfire_module.instrument_pydantic = Mock()
    mock_logfire_module.instrument_httpx = Mock()

    # Patch module-level imports in our code (only modules that use logfire)
    monkeypatch.setattr("src.services.meta_service.logfire", mock_logfire_module)
    monkeypatch.setattr("src.services.event_normalizer.logfire", mock_logfire_module)
    monkeypatch.setattr("src.services.delivery_queue.logfire", mock_logfire_module)
    monkeypatch.setattr("src.middleware.correlation_id.logfire", mock_logfire_module)
    monkeypatch.setattr("src.logging_config.logfire", mock_logfire_module)
    monkeypatch.setattr("src.main.logfire", mock_logfire_module)

    return mock_logfire_module


@pytest.fixture
def logfire_capture():
    """
    Capture Logfire logs for testing.

    This fixture patches Logfire to capture log calls for assertion.
    """
    captured_logs = []

    def capture(level):
        def _capture(*args, **kwargs):
            captured_logs.append((level, args, kwargs))

        return _capture

    with (
        patch("logfire.debug", side_effect=capture("debug")),
        patch("logfire.info", side_effect=capture("info")),
        patch("logfire.warn", side_effect=capture("warn")),
        patch("logfire.error", side_effect=capture("error")),
    ):
        yield captured_logs


@pytest.fixture
def test_client(mock_settings, mock_logfire):
    """FastAPI TestClient for E2E tests."""
    from fastapi.testclient import TestClient
    from src.main import app

    return TestClient(app)


# =============================================================================
# Webhook Payloads
# =============================================================================


@pytest.fixture
def messenger_payload():
    """Messenger webhook with a single text message."""
    return {
        "object": "page",
        "entry": [
            {
                "id": "page-123",
                "time": 1700000000,
                "messaging": [
                    {
                        "sender": {"id": "user-456"},
                        "recipient": {"id": "page-123"},
                        "timestamp": 1700000000,
                        "message": {"mid": "m_1", "text": "Hello there"},
                    }
                ],
            }
        ],
    }


@pytest.fixture
def instagram_nested_payload():
    """Instagram webhook with the message nested under value.messages."""
    return {
        "object": "instagram",
        "entry": [
            {
                "id": "ig-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messages": [
                                {
                                    "id": "ig-msg-1",
                                    "from": {"id": "ig-user-1", "username": "shopper"},
                                    "created_time": "2024-01-01T00:00:00+0000",
                                    "text": "Is this in stock?",
                                }
                            ]
                        },
                    }
                ],
            }
        ],
    }


@pytest.fixture
def instagram_flat_payload():
    """Instagram webhook with the message fields directly on value."""
    return {
        "object": "instagram",
        "entry": [
            {
                "id": "ig-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "from": {"id": "ig-user-1", "username": "shopper"},
                            "text": "Is this in stock?",
                        },
                    }
                ],
            }
        ],
    }


# =============================================================================
# Delivery Fakes
# =============================================================================


class FakeDeliveryClient:
    """Records send timing and fails on demand.

    Attributes:
        calls: (recipient_id, text, started_at, finished_at) per send, in order
        in_flight_max: Highest number of overlapping sends observed
    """

    def __init__(self, fail_on=(), send_duration: float = 0.0):
        self._fail_on = set(fail_on)
        self._send_duration = send_duration
        self._in_flight = 0
        self.in_flight_max = 0
        self.calls: list[tuple[str, str, float, float]] = []

    async def send_message(self, message: OutboundMessage) -> DeliveryResult:
        started = time.monotonic()
        self._in_flight += 1
        self.in_flight_max = max(self.in_flight_max, self._in_flight)
        try:
            if self._send_duration:
                await asyncio.sleep(self._send_duration)
            if message.text in self._fail_on:
                raise DeliveryError(f"Failed to send Meta message: {message.text}")
            return DeliveryResult(
                message_id=f"mid-{len(self.calls)}",
                recipient_id=message.recipient_id,
            )
        finally:
            self._in_flight -= 1
            self.calls.append(
                (message.recipient_id, message.text, started, time.monotonic())
            )


@pytest.fixture
def fake_delivery_client():
    """Delivery client that always succeeds instantly."""
    return FakeDeliveryClient()


@pytest.fixture
def outbound_message():
    """Messenger outbound message with a token."""
    return OutboundMessage(
        recipient_id="user-456",
        text="Thanks for reaching out!",
        access_token="test-page-token",
    )


@pytest.fixture
def make_delivery_client():
    """Factory for FakeDeliveryClient with custom failures or send duration."""
    return FakeDeliveryClient
