"""Request-scoped access to the app-owned hub and settings."""

from fastapi import Request

from clinic_relay.config import RelaySettings
from clinic_relay.relay.hub import RelayHub


def get_hub(request: Request) -> RelayHub:
    return request.app.state.hub


def get_settings(request: Request) -> RelaySettings:
    return request.app.state.settings
