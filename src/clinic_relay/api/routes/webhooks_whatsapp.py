"""WhatsApp webhook routes - Meta Cloud API integration.

GET is the one-time verification handshake. POST carries inbound messages and
delivery statuses, which are relayed to live connections through the hub.

The provider retries any non-2xx delivery, so:
- parse failures answer 500 on purpose (the provider redelivers later)
- everything else answers 200 with ACK_BODY, even when nothing was relayed
- redeliveries are dispatched again; this layer does not deduplicate
"""

import hmac
import json
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from clinic_relay.api.deps import get_hub, get_settings
from clinic_relay.config import RelaySettings
from clinic_relay.errors import AuthHandshakeFailure, InvalidPhoneFormat, ParseError
from clinic_relay.observability.correlation import get_correlation_id
from clinic_relay.observability.logging import get_logger
from clinic_relay.observability.redaction import hash_identifier, safe_log_context
from clinic_relay.relay.hub import RelayHub
from clinic_relay.whatsapp.meta_adapter import (
    SignatureVerificationError,
    parse_webhook,
    verify_signature,
)

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)

ACK_BODY = "EVENT_RECEIVED"


def _check_handshake(
    settings: RelaySettings,
    hub_mode: str | None,
    hub_verify_token: str | None,
) -> None:
    """Raise AuthHandshakeFailure unless mode and token match."""
    expected_token = settings.verify_token
    if not expected_token:
        raise AuthHandshakeFailure("verify token not configured")
    if hub_mode != "subscribe":
        raise AuthHandshakeFailure("unexpected hub.mode")
    if not hub_verify_token or not hmac.compare_digest(hub_verify_token, expected_token):
        raise AuthHandshakeFailure("verify token mismatch")


@router.get("")
async def whatsapp_webhook_verify(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    settings: RelaySettings = Depends(get_settings),
) -> Response:
    """Meta webhook verification endpoint.

    Returns:
        200 with the raw hub.challenge (not JSON) if valid.
        403 with no body otherwise.
    """
    try:
        _check_handshake(settings, hub_mode, hub_verify_token)
    except AuthHandshakeFailure as e:
        logger.warning(
            "meta webhook verification failed",
            extra={"extra_fields": safe_log_context(hub_mode=hub_mode or "missing", reason=e.message)},
        )
        return Response(status_code=e.status_code)

    logger.info(
        "meta webhook verification successful",
        extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
    )
    return Response(status_code=200, content=hub_challenge or "", media_type="text/plain")


@router.post("")
async def whatsapp_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    settings: RelaySettings = Depends(get_settings),
    hub: RelayHub = Depends(get_hub),
) -> Response:
    """Receive Meta Cloud API webhook and relay its events.

    Returns:
        200 ACK_BODY once parsing completes (zero events included).
        403 if WHATSAPP_APP_SECRET is set and the signature does not match.
        500 on any parse failure, so the provider redelivers.
    """
    correlation_id = get_correlation_id()

    try:
        body_bytes = await request.body()

        if settings.app_secret:
            try:
                verify_signature(body_bytes, x_hub_signature_256 or "", settings.app_secret)
            except SignatureVerificationError as e:
                logger.warning(
                    "meta signature verification failed",
                    extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
                )
                return Response(status_code=403)

        try:
            payload: Any = json.loads(body_bytes)
        except ValueError as e:
            raise ParseError("invalid json body") from e

        parsed = parse_webhook(payload)
    except ParseError as e:
        logger.warning(
            "meta webhook parse failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=e.message)},
        )
        return Response(status_code=e.status_code, content="parse failed", media_type="text/plain")
    except Exception:
        logger.exception(
            "meta webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="processing failed", media_type="text/plain")

    delivered = 0
    queued = 0
    for routed in parsed.events:
        try:
            if hub.dispatch(routed.phone, routed.event):
                delivered += 1
            else:
                queued += 1
        except InvalidPhoneFormat:
            # Not a parse failure: a provider retry would carry the same id
            logger.warning(
                "webhook event skipped, unroutable phone id",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        phone_hash=hash_identifier(routed.phone),
                        event_type=type(routed.event).__name__,
                    )
                },
            )

    if parsed.skipped_changes:
        logger.info(
            "non-message webhook changes ignored",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    fields=",".join(parsed.skipped_changes),
                )
            },
        )

    logger.info(
        "meta webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                events=len(parsed.events),
                delivered=delivered,
                queued=queued,
            )
        },
    )
    return Response(status_code=200, content=ACK_BODY, media_type="text/plain")
