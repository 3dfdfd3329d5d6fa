"""Health endpoints."""

from fastapi import APIRouter, Depends

from clinic_relay.api.deps import get_hub
from clinic_relay.relay.hub import RelayHub

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/health/relay")
def relay_health(hub: RelayHub = Depends(get_hub)) -> dict:
    """Live connection and pending queue counts (no phone numbers)."""
    return {"status": "ok", **hub.stats()}
