"""Normalize Meta webhook payloads into canonical inbound events.

Messenger and Instagram deliver messages in different entry shapes:

- Messenger: ``entry[].messaging[0] = {sender: {id}, message: {text}}``
- Instagram: ``entry[].changes[0].value``, which itself arrives in two shapes.
  Older payloads nest the message under ``value.messages[0]``; newer ones put
  the message fields (``from``, ``text``) directly on ``value``. Both are
  accepted.

Normalization never raises: an entry without usable fields produces no event.
"""

from typing import Any, Iterator

import logfire

from src.models.meta_models import InboundEvent, Platform


def _first(items: Any) -> Any:
    """Return the first element of a non-empty list, else None."""
    if isinstance(items, list) and items:
        return items[0]
    return None


def _party_id(obj: Any, key: str) -> str | None:
    """Return ``obj[key]["id"]`` as a string, or None when absent or empty."""
    if not isinstance(obj, dict):
        return None
    party = obj.get(key)
    if not isinstance(party, dict):
        return None
    party_id = party.get("id")
    if isinstance(party_id, (str, int)) and not isinstance(party_id, bool):
        party_id = str(party_id)
        return party_id or None
    return None


def _text(obj: Any) -> str:
    if isinstance(obj, dict):
        text = obj.get("text")
        if isinstance(text, str):
            return text
    return ""


def _messenger_event(entry: dict) -> InboundEvent | None:
    messaging = _first(entry.get("messaging"))
    if not isinstance(messaging, dict):
        return None

    sender_id = _party_id(messaging, "sender")
    message = messaging.get("message")
    if not sender_id or not isinstance(message, dict):
        return None

    return InboundEvent(
        recipient_id=sender_id,
        text=_text(message),
        platform=Platform.MESSENGER,
    )


def _resolve_instagram_message(value: Any) -> dict | None:
    if not isinstance(value, dict):
        return None

    nested = _first(value.get("messages"))
    if nested is not None:
        return nested if isinstance(nested, dict) else None

    if _party_id(value, "from"):
        return value
    return None


def _instagram_event(entry: dict) -> InboundEvent | None:
    change = _first(entry.get("changes"))
    if not isinstance(change, dict):
        return None

    message = _resolve_instagram_message(change.get("value"))
    sender_id = _party_id(message, "from")
    if not sender_id:
        return None

    text = _text(message) or _text(message.get("message"))
    return InboundEvent(
        recipient_id=sender_id,
        text=text,
        platform=Platform.INSTAGRAM,
    )


def normalize_entry(entry: Any) -> InboundEvent | None:
    """Extract the event from a single webhook entry, if it carries one."""
    if not isinstance(entry, dict):
        return None
    if "messaging" in entry:
        return _messenger_event(entry)
    if "changes" in entry:
        return _instagram_event(entry)
    return None


def normalize_webhook_payload(payload: Any) -> Iterator[InboundEvent]:
    """
    Yield one InboundEvent per usable entry, in entry order.

    Args:
        payload: Decoded webhook JSON body

    Yields:
        InboundEvent for every entry that carries a message
    """
    if not isinstance(payload, dict):
        return

    entries = payload.get("entry")
    if not isinstance(entries, list):
        return

    for index, entry in enumerate(entries):
        event = normalize_entry(entry)
        if event is None:
            logfire.debug(
                "Skipping webhook entry without a usable message",
                entry_index=index,
                object=payload.get("object"),
                entry_keys=sorted(entry) if isinstance(entry, dict) else None,
            )
            continue
        yield event
