"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.
"""

# =============================================================================
# Meta Graph API
# =============================================================================

# Graph API version used for both Messenger and Instagram endpoints
META_GRAPH_API_VERSION = "v22.0"

# Facebook Graph API base (Messenger sends, page lookups)
FACEBOOK_GRAPH_BASE_URL = f"https://graph.facebook.com/{META_GRAPH_API_VERSION}"

# Instagram Graph API base (Instagram Direct sends)
INSTAGRAM_GRAPH_BASE_URL = f"https://graph.instagram.com/{META_GRAPH_API_VERSION}"

# Webhook fields the app subscribes a page to
WEBHOOK_SUBSCRIBED_FIELDS = ["messages", "messaging_postbacks", "message_echoes"]

# =============================================================================
# HTTP Timeout Configuration
# =============================================================================

# Timeout for outbound message sends (seconds)
META_SEND_TIMEOUT_SECONDS = 15.0

# Timeout for page / account metadata lookups (seconds)
META_LOOKUP_TIMEOUT_SECONDS = 10.0

# =============================================================================
# Delivery Queue
# =============================================================================

# Minimum wait between consecutive sends from the queue (seconds).
# Keeps outbound throughput under the Graph API rate ceiling.
MESSAGE_PACING_SECONDS = 1.0

# =============================================================================
# Webhook Verification
# =============================================================================

# hub.mode value Meta sends during the subscription handshake
WEBHOOK_VERIFY_MODE = "subscribe"

# =============================================================================
# Logging
# =============================================================================

# Number of message characters included in log previews
MESSAGE_PREVIEW_CHARS = 50

# Max provider response body characters kept in error logs
RESPONSE_BODY_LOG_CHARS = 500

# =============================================================================
# Application Lifecycle
# =============================================================================

# How long shutdown waits for the delivery queue to drain (seconds)
GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS = 30.0
