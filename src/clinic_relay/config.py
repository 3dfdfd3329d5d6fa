"""Relay settings loaded from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_GRAPH_API_VERSION = "v18.0"
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_WS_IDLE_TIMEOUT = 90.0


@dataclass(frozen=True)
class RelaySettings:
    """WhatsApp provider credentials and relay tuning.

    Env vars:
    - WHATSAPP_ACCESS_TOKEN: Graph API bearer token
    - WHATSAPP_VERIFY_TOKEN: webhook verification secret
    - WHATSAPP_PHONE_NUMBER_ID: sending phone number id

    Optional:
    - WHATSAPP_GRAPH_API_VERSION (default: v18.0)
    - WHATSAPP_APP_SECRET: enables X-Hub-Signature-256 verification
    - WHATSAPP_HTTP_TIMEOUT: provider timeout in seconds (default: 10)
    - RELAY_WS_IDLE_TIMEOUT: idle seconds before a live connection is closed,
      0 disables (default: 90)
    """

    access_token: str = ""
    verify_token: str = ""
    phone_number_id: str = ""
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    app_secret: str = ""
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    ws_idle_timeout: float = DEFAULT_WS_IDLE_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelaySettings":
        env = os.environ if environ is None else environ
        return cls(
            access_token=env.get("WHATSAPP_ACCESS_TOKEN", ""),
            verify_token=env.get("WHATSAPP_VERIFY_TOKEN", ""),
            phone_number_id=env.get("WHATSAPP_PHONE_NUMBER_ID", ""),
            graph_api_version=env.get("WHATSAPP_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION),
            app_secret=env.get("WHATSAPP_APP_SECRET", ""),
            http_timeout=float(env.get("WHATSAPP_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)),
            ws_idle_timeout=float(env.get("RELAY_WS_IDLE_TIMEOUT", DEFAULT_WS_IDLE_TIMEOUT)),
        )

    @property
    def messages_url(self) -> str:
        return (
            f"https://graph.facebook.com/{self.graph_api_version}/"
            f"{self.phone_number_id}/messages"
        )

    @property
    def provider_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)
