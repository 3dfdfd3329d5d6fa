"""Meta Cloud API adapter - verify and parse webhook payloads.

Payload structure:
{
  "object": "whatsapp_business_account",
  "entry": [{
    "changes": [{
      "field": "messages",
      "value": {
        "metadata": {"phone_number_id": "..."},
        "messages": [{"from": "PHONE", "id": "wamid...", "type": "text", "text": {"body": "..."}}],
        "statuses": [{"id": "wamid...", "recipient_id": "PHONE", "status": "delivered"}]
      }
    }]
  }]
}
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any

from clinic_relay.errors import ParseError
from clinic_relay.relay.events import InboundMessageEvent, StatusEvent
from clinic_relay.relay.phone import to_digits_only

# Message types whose payload object may carry a caption
_CAPTIONED_TYPES = ("image", "video", "document")


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


@dataclass(frozen=True)
class RoutedEvent:
    """An event plus the digits-only provider id it is keyed by."""

    phone: str
    event: InboundMessageEvent | StatusEvent


@dataclass
class ParsedWebhook:
    events: list[RoutedEvent] = field(default_factory=list)
    skipped_changes: list[str] = field(default_factory=list)


def verify_signature(payload_bytes: bytes, signature_header: str, app_secret: str) -> None:
    """Verify Meta webhook signature (HMAC-SHA256, "sha256=<hex>").

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith("sha256="):
        raise SignatureVerificationError("invalid signature format")

    expected_sig = signature_header[7:]

    computed_sig = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(computed_sig, expected_sig):
        raise SignatureVerificationError("signature mismatch")


def parse_webhook(payload: Any) -> ParsedWebhook:
    """Walk every entry and change of a webhook delivery.

    Args:
        payload: Decoded JSON body.

    Returns:
        ParsedWebhook with events in payload order. An empty result is valid.

    Raises:
        ParseError: If the envelope does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise ParseError("webhook payload must be a JSON object")

    parsed = ParsedWebhook()
    try:
        for entry in _as_list(payload.get("entry"), "entry"):
            for change in _as_list(entry.get("changes"), "changes"):
                _parse_change(change, parsed)
    except ParseError:
        raise
    except (AttributeError, KeyError, TypeError) as e:
        raise ParseError(f"malformed webhook payload: {type(e).__name__}") from e

    return parsed


def _parse_change(change: dict[str, Any], parsed: ParsedWebhook) -> None:
    field_name = change.get("field", "messages")
    value = change.get("value") or {}

    if field_name != "messages":
        # e.g. message_template_status_update; nothing to relay live
        parsed.skipped_changes.append(str(field_name))
        return

    for message in _as_list(value.get("messages"), "messages"):
        parsed.events.append(_message_event(message))

    for status in _as_list(value.get("statuses"), "statuses"):
        parsed.events.append(_status_event(status))


def _message_event(message: dict[str, Any]) -> RoutedEvent:
    sender = to_digits_only(message.get("from"))
    message_type = str(message.get("type") or "unknown")

    reaction = None
    if message_type == "reaction" and isinstance(message.get("reaction"), dict):
        reaction = {
            "messageId": str(message["reaction"].get("message_id", "")),
            "emoji": str(message["reaction"].get("emoji", "")),
        }

    context = None
    if isinstance(message.get("context"), dict) and message["context"].get("id"):
        context = {"messageId": str(message["context"]["id"])}

    event = InboundMessageEvent(
        id=str(message["id"]),
        from_=sender,
        text=_message_text(message, message_type),
        timestamp=str(message.get("timestamp", "")),
        type=message_type,
        reaction=reaction,
        context=context,
    )
    return RoutedEvent(phone=sender, event=event)


def _message_text(message: dict[str, Any], message_type: str) -> str:
    """Body text, else a media caption, else the type label as placeholder."""
    text_obj = message.get("text")
    if isinstance(text_obj, dict) and text_obj.get("body"):
        return str(text_obj["body"])

    if message_type in _CAPTIONED_TYPES:
        media = message.get(message_type)
        if isinstance(media, dict) and media.get("caption"):
            return str(media["caption"])

    return message_type


def _status_event(status: dict[str, Any]) -> RoutedEvent:
    recipient = to_digits_only(status.get("recipient_id"))

    error_code = None
    error_message = None
    errors = status.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        error_code = str(first["code"]) if first.get("code") is not None else None
        error_message = first.get("message") or first.get("title")

    event = StatusEvent(
        id=str(status["id"]),
        timestamp=str(status.get("timestamp", "")),
        status=str(status.get("status", "")),
        error_code=error_code,
        error_message=error_message,
    )
    return RoutedEvent(phone=recipient, event=event)


def _as_list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"{name} must be a list")
    return value
