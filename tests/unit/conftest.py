import pytest

from storage_lite.config import StorageConfig
from tests.unit.helpers import API_URL, FakeResumableServer, FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    """Transport that records requests."""
    return FakeTransport()


@pytest.fixture
def server(transport: FakeTransport) -> FakeResumableServer:
    """Resumable upload server answering through the fake transport."""
    fake_server = FakeResumableServer()
    transport.handler = fake_server
    return fake_server


@pytest.fixture
def config() -> StorageConfig:
    return StorageConfig(api_url=API_URL)
