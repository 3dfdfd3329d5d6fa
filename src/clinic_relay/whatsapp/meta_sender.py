"""Outbound WhatsApp messaging via Meta Cloud API.

Security: NEVER log the destination number or message text. Only hashes and lengths.

No retries here: the provider has its own delivery guarantees, and a retry
after an ambiguous failure would double-send.
"""

from typing import Any

import requests

from clinic_relay.config import RelaySettings
from clinic_relay.errors import ProviderError
from clinic_relay.observability.correlation import get_correlation_id
from clinic_relay.observability.logging import get_logger
from clinic_relay.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)


def text_payload(to_phone: str, text: str, reply_to: str | None = None) -> dict[str, Any]:
    """Text message payload. reply_to quotes an earlier provider message id."""
    payload: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to_phone,
        "type": "text",
        "text": {"preview_url": False, "body": text},
    }
    if reply_to:
        payload["context"] = {"message_id": reply_to}
    return payload


def reaction_payload(to_phone: str, message_id: str, emoji: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to_phone,
        "type": "reaction",
        "reaction": {"message_id": message_id, "emoji": emoji},
    }


def provider_message_id(data: Any) -> str | None:
    """First message id from a send response ({"messages": [{"id": ...}]})."""
    if not isinstance(data, dict):
        return None
    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        message_id = messages[0].get("id")
        return str(message_id) if message_id else None
    return None


def send_via_meta(settings: RelaySettings, payload: dict[str, Any]) -> dict[str, Any]:
    """POST a message payload to the Graph API.

    Args:
        settings: Provider credentials.
        payload: Graph API message payload (see text_payload/reaction_payload).

    Returns:
        The provider's JSON response body.

    Raises:
        ProviderError: Missing config (500), network failure (500), or non-2xx
            response (provider status, provider error message).
    """
    if not settings.provider_configured:
        logger.error("whatsapp provider not configured")
        raise ProviderError("WhatsApp provider is not configured", status_code=500)

    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.access_token}",
    }

    log_ctx = safe_log_context(
        correlationId=get_correlation_id(),
        to_hash=hash_identifier(str(payload.get("to", ""))),
        message_type=payload.get("type"),
        provider="meta",
    )

    logger.info("sending outbound message via meta", extra={"extra_fields": log_ctx})

    try:
        resp = requests.post(
            settings.messages_url,
            json=payload,
            headers=headers,
            timeout=settings.http_timeout,
        )
    except requests.RequestException as e:
        logger.error(
            "outbound send via meta failed",
            extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
        )
        raise ProviderError(f"WhatsApp provider unreachable: {type(e).__name__}", status_code=500) from e

    body = _json_or_text(resp)

    if not 200 <= resp.status_code < 300:
        message = _error_message(body) or f"WhatsApp provider returned HTTP {resp.status_code}"
        logger.error(
            "outbound send via meta rejected",
            extra={"extra_fields": {**log_ctx, "status_code": str(resp.status_code)}},
        )
        raise ProviderError(message, status_code=resp.status_code, body=body)

    logger.info("outbound message sent via meta", extra={"extra_fields": log_ctx})
    return body if isinstance(body, dict) else {"raw": body}


def _json_or_text(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_message(body: Any) -> str | None:
    """Pull error.message out of a Graph API error envelope."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        return None
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None
