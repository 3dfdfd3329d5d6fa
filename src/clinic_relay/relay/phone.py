"""Phone number normalization.

Two policies exist and they are NOT interchangeable:

- to_e164: "+<digits>" keys used by the hub and the outbound sender.
- to_digits_only: ids as the provider sends them in webhooks (no "+").

The hub normalizes with to_e164 at its boundary, so a digits-only id coming
from a webhook still resolves to the same key as "+<digits>" from a client.
"""

import re

from clinic_relay.errors import InvalidPhoneFormat

_E164_PATTERN = re.compile(r"^\+[1-9]\d{0,14}$")


def to_e164(raw: str | None) -> str:
    """Normalize to E.164-with-plus.

    Args:
        raw: Phone as typed by a user or sent by the provider.

    Returns:
        "+" followed by 1-15 digits, first digit 1-9.

    Raises:
        InvalidPhoneFormat: If the value cannot be normalized.
    """
    if raw is None:
        raise InvalidPhoneFormat("phone number is required")

    candidate = "+" + str(raw).strip().lstrip("+")
    if not _E164_PATTERN.match(candidate):
        raise InvalidPhoneFormat("invalid phone number format, expected +<country code><number>")
    return candidate


def to_digits_only(raw: str | None) -> str:
    """Strip every "+" from a provider id. None maps to ""."""
    if raw is None:
        return ""
    return str(raw).strip().replace("+", "")
