"""Tests for Meta webhook parsing and signature verification."""

import hashlib
import hmac

import pytest

from clinic_relay.errors import ParseError
from clinic_relay.relay.events import InboundMessageEvent, StatusEvent
from clinic_relay.whatsapp.meta_adapter import (
    SignatureVerificationError,
    parse_webhook,
    verify_signature,
)

from helpers import make_message, make_status, make_webhook


class TestParseMessages:
    def test_text_message(self):
        parsed = parse_webhook(make_webhook(messages=[make_message()]))

        assert len(parsed.events) == 1
        routed = parsed.events[0]
        assert routed.phone == "971501234567"
        assert routed.event == InboundMessageEvent(
            id="m1", from_="971501234567", text="hi", timestamp="1700000000", type="text"
        )

    def test_sender_plus_is_stripped(self):
        parsed = parse_webhook(make_webhook(messages=[make_message(sender="+971501234567")]))

        assert parsed.events[0].phone == "971501234567"
        assert parsed.events[0].event.from_ == "971501234567"

    def test_missing_body_uses_type_label(self):
        message = make_message(body=None, message_type="sticker", sticker={"id": "media1"})
        parsed = parse_webhook(make_webhook(messages=[message]))

        assert parsed.events[0].event.text == "sticker"

    def test_media_caption_used_as_text(self):
        message = make_message(body=None, message_type="image", image={"id": "media1", "caption": "x-ray"})
        parsed = parse_webhook(make_webhook(messages=[message]))

        assert parsed.events[0].event.text == "x-ray"

    def test_media_without_caption_uses_type_label(self):
        message = make_message(body=None, message_type="document", document={"id": "media1"})
        parsed = parse_webhook(make_webhook(messages=[message]))

        assert parsed.events[0].event.text == "document"

    def test_reaction(self):
        message = make_message(
            body=None,
            message_type="reaction",
            reaction={"message_id": "wamid.OUT1", "emoji": "👍"},
        )
        event = parse_webhook(make_webhook(messages=[message])).events[0].event

        assert event.text == "reaction"
        assert event.reaction == {"messageId": "wamid.OUT1", "emoji": "👍"}
        assert event.to_dict()["reaction"] == {"messageId": "wamid.OUT1", "emoji": "👍"}

    def test_reply_context(self):
        message = make_message(context={"from": "15550001111", "id": "wamid.PREV"})
        event = parse_webhook(make_webhook(messages=[message])).events[0].event

        assert event.context == {"messageId": "wamid.PREV"}


class TestParseStatuses:
    def test_status_keyed_by_recipient(self):
        parsed = parse_webhook(make_webhook(statuses=[make_status(recipient="+971501234567")]))

        routed = parsed.events[0]
        assert routed.phone == "971501234567"
        assert routed.event == StatusEvent(id="wamid.OUT1", timestamp="1700000050", status="delivered")
        assert routed.event.to_dict()["from"] == "me"
        assert routed.event.to_dict()["text"] == ""

    def test_failed_status_carries_first_error(self):
        status = make_status(
            status="failed",
            errors=[{"code": 131047, "title": "Re-engagement message", "message": "More than 24 hours"}],
        )
        event = parse_webhook(make_webhook(statuses=[status])).events[0].event

        assert event.error_code == "131047"
        assert event.error_message == "More than 24 hours"
        assert event.to_dict()["errorCode"] == "131047"


class TestEnvelope:
    def test_empty_payload_yields_no_events(self):
        assert parse_webhook({}).events == []

    def test_change_without_messages_or_statuses(self):
        assert parse_webhook(make_webhook()).events == []

    def test_walks_every_entry_and_change(self):
        payload = make_webhook(messages=[make_message("m1")])
        payload["entry"][0]["changes"].append(
            {"field": "messages", "value": {"statuses": [make_status("s1")]}}
        )
        payload["entry"].append(
            {"changes": [{"field": "messages", "value": {"messages": [make_message("m2")]}}]}
        )

        ids = [routed.event.id for routed in parse_webhook(payload).events]
        assert ids == ["m1", "s1", "m2"]

    def test_messages_and_statuses_in_one_change(self):
        payload = make_webhook(messages=[make_message("m1")], statuses=[make_status("s1")])
        ids = [routed.event.id for routed in parse_webhook(payload).events]
        assert ids == ["m1", "s1"]

    def test_template_status_change_is_skipped(self):
        payload = {
            "entry": [
                {
                    "changes": [
                        {
                            "field": "message_template_status_update",
                            "value": {"event": "APPROVED", "message_template_id": 42},
                        }
                    ]
                }
            ]
        }
        parsed = parse_webhook(payload)

        assert parsed.events == []
        assert parsed.skipped_changes == ["message_template_status_update"]

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "text",
            {"entry": "nope"},
            {"entry": ["nope"]},
            {"entry": [{"changes": [{"value": {"messages": [{"from": "1"}]}}]}]},
            {"entry": [{"changes": [{"value": {"statuses": "x"}}]}]},
        ],
    )
    def test_malformed_raises_parse_error(self, payload):
        with pytest.raises(ParseError):
            parse_webhook(payload)


class TestVerifySignature:
    SECRET = "app-secret"

    def _sign(self, body: bytes) -> str:
        return "sha256=" + hmac.new(self.SECRET.encode(), body, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        body = b'{"entry": []}'
        verify_signature(body, self._sign(body), self.SECRET)

    def test_missing_header(self):
        with pytest.raises(SignatureVerificationError, match="missing"):
            verify_signature(b"{}", "", self.SECRET)

    def test_wrong_prefix(self):
        with pytest.raises(SignatureVerificationError, match="format"):
            verify_signature(b"{}", "md5=abc", self.SECRET)

    def test_tampered_body(self):
        with pytest.raises(SignatureVerificationError, match="mismatch"):
            verify_signature(b'{"entry": [1]}', self._sign(b'{"entry": []}'), self.SECRET)
