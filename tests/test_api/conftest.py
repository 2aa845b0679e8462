"""
API test fixtures.

The runtime is built synchronously so every asyncio primitive binds to the
TestClient's event loop when the lifespan starts it.
"""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from event_driven.event_bus import InMemoryBroker
from event_driven.runtime import Runtime
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.settings import Settings


@pytest.fixture
def api_runtime(settings: Settings, data_store: DataStore, email_channel: EmailChannel) -> Runtime:
    return Runtime(settings, broker=InMemoryBroker(), data_store=data_store, email_channel=email_channel)


@pytest.fixture
def client(api_runtime: Runtime):
    """Test client with the runtime started by the application lifespan."""
    with TestClient(create_app(api_runtime)) as test_client:
        yield test_client
