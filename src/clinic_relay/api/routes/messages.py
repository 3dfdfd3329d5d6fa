"""Outbound message endpoints used by the clinic inbox UI.

A successful send is echoed to the recipient's live connection right away so the
sender's UI shows it before the provider's status webhook arrives. Clients
reconcile the echo and later status events by message id.

Bodies are parsed by hand so every malformed request maps to 400 {error}
rather than FastAPI's default 422.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator
from starlette.concurrency import run_in_threadpool

from clinic_relay.api.deps import get_hub, get_settings
from clinic_relay.config import RelaySettings
from clinic_relay.errors import InvalidPhoneFormat, MissingField, ProviderError
from clinic_relay.observability.correlation import get_correlation_id
from clinic_relay.observability.logging import get_logger
from clinic_relay.observability.redaction import hash_identifier, safe_log_context
from clinic_relay.relay.events import OutboundEchoEvent, epoch_timestamp, local_message_id
from clinic_relay.relay.hub import RelayHub
from clinic_relay.relay.phone import to_e164
from clinic_relay.whatsapp.meta_sender import (
    provider_message_id,
    reaction_payload,
    send_via_meta,
    text_payload,
)

router = APIRouter(prefix="/messages", tags=["messages"])

logger = get_logger(__name__)


class _OutboundRequest(BaseModel):
    to: str | None = None

    @field_validator("to", mode="before")
    @classmethod
    def _phone_as_string(cls, value: Any) -> Any:
        # Inbox clients sometimes post the number as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class SendMessageRequest(_OutboundRequest):
    message: str | None = None
    id: str | None = None
    replyTo: str | None = None


class SendReactionRequest(_OutboundRequest):
    messageId: str | None = None
    emoji: str | None = None


RequestModel = TypeVar("RequestModel", bound=BaseModel)


async def _read_body(request: Request, model: type[RequestModel]) -> RequestModel:
    """Parse a JSON object body into model. An empty body is an empty object.

    Raises:
        MissingField: Body is not a JSON object, or a field has the wrong type.
    """
    raw = await request.body()
    if not raw.strip():
        return model()

    try:
        data = json.loads(raw)
    except ValueError:
        raise MissingField("request body must be a JSON object") from None
    if not isinstance(data, dict):
        raise MissingField("request body must be a JSON object")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise MissingField(f"invalid value for {', '.join(fields) or 'body'}") from None


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise MissingField(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")


def _validation_error(e: MissingField | InvalidPhoneFormat) -> JSONResponse:
    logger.info(
        "outbound request rejected",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                error_type=type(e).__name__,
            )
        },
    )
    return JSONResponse(status_code=e.status_code, content={"error": e.message})


def _provider_error(e: ProviderError) -> JSONResponse:
    return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})


@router.post("/send")
async def send_message(
    request: Request,
    settings: RelaySettings = Depends(get_settings),
    hub: RelayHub = Depends(get_hub),
) -> JSONResponse:
    """Send a text message and echo it to the recipient's live connection.

    Body: {to, message, id?, replyTo?}. replyTo is the provider id of the
    message being answered.

    Returns:
        200 {success: true, data} with the provider's raw response.
        400 {error} for a missing field or invalid phone.
        Provider status {success: false, error} when the provider call fails.
    """
    try:
        req = await _read_body(request, SendMessageRequest)
        _require(to=req.to, message=req.message)
        to_phone = to_e164(req.to)
    except (MissingField, InvalidPhoneFormat) as e:
        return _validation_error(e)

    payload = text_payload(to_phone, req.message, reply_to=req.replyTo)
    try:
        data = await run_in_threadpool(send_via_meta, settings, payload)
    except ProviderError as e:
        return _provider_error(e)

    message_id = req.id or provider_message_id(data) or local_message_id()
    echo = OutboundEchoEvent(
        id=message_id,
        text=req.message,
        timestamp=epoch_timestamp(),
        context={"messageId": req.replyTo} if req.replyTo else None,
    )
    delivered = hub.dispatch(to_phone, echo)

    logger.info(
        "outbound message echoed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                to_hash=hash_identifier(to_phone),
                live=delivered,
            )
        },
    )
    return JSONResponse(status_code=200, content={"success": True, "data": data})


@router.post("/send-reaction")
async def send_reaction(
    request: Request,
    settings: RelaySettings = Depends(get_settings),
) -> JSONResponse:
    """React to a provider message with an emoji. No local echo."""
    try:
        req = await _read_body(request, SendReactionRequest)
        _require(to=req.to, messageId=req.messageId, emoji=req.emoji)
        to_phone = to_e164(req.to)
    except (MissingField, InvalidPhoneFormat) as e:
        return _validation_error(e)

    try:
        data = await run_in_threadpool(
            send_via_meta, settings, reaction_payload(to_phone, req.messageId, req.emoji)
        )
    except ProviderError as e:
        return _provider_error(e)

    return JSONResponse(status_code=200, content={"success": True, "data": data})
