"""Relay error taxonomy.

Each error carries the HTTP status the routes answer with and a message that is
safe to hand back to the caller.
"""


class RelayError(Exception):
    """Base class for errors surfaced by the relay."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MissingField(RelayError):
    """A required request field is absent or empty."""

    status_code = 400


class InvalidPhoneFormat(RelayError):
    """Phone number does not normalize to +<1-15 digits>, leading digit 1-9."""

    status_code = 400


class ProviderError(RelayError):
    """The WhatsApp provider rejected the call or could not be reached.

    status_code mirrors the provider's HTTP status; network failures and missing
    configuration default to 500.
    """

    def __init__(self, message: str, status_code: int | None = None, body: object = None) -> None:
        super().__init__(message, status_code)
        self.body = body


class ParseError(RelayError):
    """Webhook payload could not be parsed. Answered with 500 so the provider retries."""

    status_code = 500


class AuthHandshakeFailure(RelayError):
    """Webhook verification handshake rejected."""

    status_code = 403
