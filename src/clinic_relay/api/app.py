"""ASGI entry point (uvicorn clinic_relay.api.app:app)."""

from .factory import create_app

app = create_app()
