"""Tests for the two phone normalization policies."""

import pytest

from clinic_relay.errors import InvalidPhoneFormat
from clinic_relay.relay.phone import to_digits_only, to_e164


class TestToE164:
    """E.164-with-plus: used by the hub and the outbound sender."""

    def test_adds_plus_to_bare_digits(self):
        assert to_e164("971501234567") == "+971501234567"

    def test_keeps_single_plus(self):
        assert to_e164("+971501234567") == "+971501234567"

    def test_collapses_repeated_leading_plus(self):
        assert to_e164("++971501234567") == "+971501234567"

    def test_trims_whitespace(self):
        assert to_e164("  +971501234567 ") == "+971501234567"

    @pytest.mark.parametrize("raw", ["+1", "1", "+971501234567", "123456789012345"])
    def test_idempotent(self, raw):
        once = to_e164(raw)
        assert to_e164(once) == once

    def test_bare_local_number_with_nonzero_lead_is_accepted(self):
        """Pattern only checks shape, so 501234567 becomes +501234567."""
        assert to_e164("501234567") == "+501234567"

    @pytest.mark.parametrize(
        "raw",
        [
            "abc",
            "",
            "+",
            "0501234567",
            "+0501234567",
            "1234567890123456",  # 16 digits
            "+97 150 123 4567",
            "+97+1501234567",
            "971-50-123-4567",
        ],
    )
    def test_rejects_invalid(self, raw):
        with pytest.raises(InvalidPhoneFormat):
            to_e164(raw)

    def test_rejects_none(self):
        with pytest.raises(InvalidPhoneFormat):
            to_e164(None)

    def test_error_maps_to_400(self):
        with pytest.raises(InvalidPhoneFormat) as exc_info:
            to_e164("abc")
        assert exc_info.value.status_code == 400


class TestToDigitsOnly:
    """Digits-only: used for provider ids read from webhooks."""

    def test_noop_without_plus(self):
        assert to_digits_only("971501234567") == "971501234567"

    def test_strips_leading_plus(self):
        assert to_digits_only("+971501234567") == "971501234567"

    def test_strips_every_plus(self):
        assert to_digits_only("++97+1") == "971"

    def test_none_is_empty(self):
        assert to_digits_only(None) == ""


class TestPolicyBoundary:
    """The two policies produce different strings for the same number."""

    def test_policies_differ(self):
        assert to_digits_only("+971501234567") != to_e164("971501234567")

    def test_digits_only_output_resolves_to_same_hub_key(self):
        assert to_e164(to_digits_only("+971501234567")) == to_e164("+971501234567")
