"""Events pushed to live connections.

to_dict() is the JSON wire form clients receive.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any

OUTBOUND_SENDER = "me"


def local_message_id() -> str:
    """Fallback id for an outbound echo when neither caller nor provider gave one."""
    return f"local-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def epoch_timestamp() -> str:
    """Provider-style timestamp (epoch seconds as a string)."""
    return str(int(time.time()))


@dataclass(frozen=True)
class InboundMessageEvent:
    """Message a patient/lead sent to the clinic's WhatsApp number."""

    id: str
    from_: str
    text: str
    timestamp: str
    type: str = "text"
    reaction: dict[str, str] | None = None
    context: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.from_,
            "text": self.text,
            "timestamp": self.timestamp,
            "type": self.type,
        }
        if self.reaction is not None:
            data["reaction"] = self.reaction
        if self.context is not None:
            data["context"] = self.context
        return data


@dataclass(frozen=True)
class StatusEvent:
    """Delivery status (sent/delivered/read/failed) of a message we sent."""

    id: str
    timestamp: str
    status: str
    error_code: str | None = None
    error_message: str | None = None
    from_: str = OUTBOUND_SENDER
    text: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.from_,
            "text": self.text,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.error_code is not None:
            data["errorCode"] = self.error_code
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data


@dataclass(frozen=True)
class OutboundEchoEvent:
    """Local echo of a message accepted by the provider, before any status webhook."""

    id: str
    text: str
    timestamp: str
    status: str = "sent"
    context: dict[str, str] | None = None
    from_: str = OUTBOUND_SENDER

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.from_,
            "text": self.text,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.context is not None:
            data["context"] = self.context
        return data


RelayEvent = InboundMessageEvent | StatusEvent | OutboundEchoEvent
