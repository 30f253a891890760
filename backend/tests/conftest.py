import os
import sys

import pytest

# Ensure the backend root (containing the `flowbot` package) is importable
_TESTS_DIR = os.path.dirname(__file__)
_BACKEND_ROOT = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _BACKEND_ROOT not in sys.path:
    sys.path.insert(0, _BACKEND_ROOT)

from tests.flow_test_utils import FakeClientFactory, FakeMessagingClient  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests with mocks only")


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def fake_client() -> FakeMessagingClient:
    return FakeMessagingClient()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting."""
    calls: list[float] = []

    async def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def settings():
    from flowbot.settings import Settings

    return Settings(
        public_base_url="https://runtime.test",
        fallback_message="I didn't understand that. Try typing /start to begin.",
        database_url=None,
        webhook_secret_token=None,
    )


@pytest.fixture
def deployment_store():
    from flowbot.services.deployment_store import InMemoryDeploymentStore

    return InMemoryDeploymentStore()


@pytest.fixture
def app(settings, client_factory, deployment_store):
    from flowbot.main import create_app

    return create_app(
        settings, client_factory=client_factory, deployment_store=deployment_store
    )


@pytest.fixture
def api_client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as client:
        yield client
