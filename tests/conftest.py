"""Shared pytest fixtures for relay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from clinic_relay.api.factory import create_app  # noqa: E402
from clinic_relay.config import RelaySettings  # noqa: E402
from clinic_relay.relay.hub import RelayHub  # noqa: E402

from helpers import TEST_VERIFY_TOKEN  # noqa: E402


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        access_token="test-access-token",
        verify_token=TEST_VERIFY_TOKEN,
        phone_number_id="1234567890",
        ws_idle_timeout=0,
    )


@pytest.fixture
def hub() -> RelayHub:
    """Fresh hub per test; no state leaks between tests."""
    return RelayHub()


@pytest.fixture
def client(settings, hub):
    with TestClient(create_app(settings=settings, hub=hub)) as test_client:
        yield test_client
