"""Redaction helpers for safe logging.

Patient phone numbers and message bodies are PII. Anything that comes from the
provider or from a live client passes through these before it reaches a log line.
"""

import hashlib
import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"
_HASH_SUFFIX = "_hash"
_HASH_PATTERN = re.compile(r"^sha256:[0-9a-f]{12}$")


def hash_identifier(value: str) -> str:
    """Non-reversible short hash for log correlation ("sha256:" + 12 hex chars)."""
    return "sha256:" + hashlib.sha256(value.encode()).hexdigest()[:12]


def redact_string(value: str) -> str:
    """Redact PII patterns from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # Structure only, never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging.

    Values are redacted, except hash_identifier output under "*_hash" keys:
    a digit-heavy hex digest would otherwise be mistaken for a phone number.
    """
    return {k: v if _is_hash(k, v) else redact_value(v) for k, v in kwargs.items()}


def _is_hash(key: str, value: Any) -> bool:
    return key.endswith(_HASH_SUFFIX) and isinstance(value, str) and bool(_HASH_PATTERN.match(value))
