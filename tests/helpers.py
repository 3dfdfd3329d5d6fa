"""Shared test helpers (regular functions and fakes, not fixtures)."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

TEST_VERIFY_TOKEN = "test-verify-token"


class FakeConnection:
    """In-memory ConnectionHandle that records what the hub sends."""

    def __init__(self, is_open: bool = True, fail_after: int | None = None):
        self._open = is_open
        self.fail_after = fail_after
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self.closed

    def send(self, payload: dict[str, Any]) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError("transport gone")
        self.sent.append(payload)

    def close(self) -> None:
        self.closed = True


def make_message(
    message_id: str = "m1",
    sender: str = "971501234567",
    body: str | None = "hi",
    timestamp: str = "1700000000",
    message_type: str = "text",
    **extra: Any,
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "from": sender,
        "id": message_id,
        "timestamp": timestamp,
        "type": message_type,
    }
    if body is not None:
        message["text"] = {"body": body}
    message.update(extra)
    return message


def make_status(
    message_id: str = "wamid.OUT1",
    recipient: str = "971501234567",
    status: str = "delivered",
    timestamp: str = "1700000050",
    **extra: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": message_id,
        "recipient_id": recipient,
        "status": status,
        "timestamp": timestamp,
    }
    data.update(extra)
    return data


def make_webhook(
    messages: list[dict] | None = None,
    statuses: list[dict] | None = None,
    field: str = "messages",
) -> dict[str, Any]:
    """Build a Meta webhook envelope with a single entry/change."""
    value: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550001111", "phone_number_id": "1234567890"},
    }
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": field, "value": value}]}],
    }


def provider_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """Fake requests.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    if isinstance(body, (dict, list)):
        resp.json.return_value = body
        resp.text = str(body)
    else:
        resp.json.side_effect = ValueError("not json")
        resp.text = body or ""
    return resp
