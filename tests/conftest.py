"""
Shared fixtures for the client core tests
"""
import pytest

from anyapi_client.events import Notifier
from anyapi_client.transport import RequestExecutor
from anyapi_client.vault.persistence import MemorySessionStore
from anyapi_client.vault.session import CredentialSession
from anyapi_client.vault.status import VaultStatusCoordinator

from tests.helpers import BASE_URL, FakeBackend, FakeClock, SleepRecorder


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def executor(backend, notifier, sleeper):
    return RequestExecutor(
        BASE_URL,
        timeout=5.0,
        max_retries=3,
        retry_delay=1.0,
        notifier=notifier,
        transport=backend.transport(),
        sleep=sleeper,
    )


@pytest.fixture
def session(executor, store, clock):
    credential_session = CredentialSession(executor, store, clock=clock)
    executor.set_auth_provider(credential_session.get_auth_header)
    return credential_session


@pytest.fixture
def coordinator(executor, session, notifier):
    return VaultStatusCoordinator(executor, session, notifier, debounce=0.05)
