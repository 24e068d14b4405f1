import pytest

from app.directory import InMemoryVolunteerDirectory
from app.stores import InMemoryAttemptStore, InMemoryRequestStore
from app.wiring import build_coordinator

from helpers import FakeClock, RecordingHistory, RecordingNotifier


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return InMemoryVolunteerDirectory()


@pytest.fixture
def request_store():
    return InMemoryRequestStore()


@pytest.fixture
def attempt_store():
    return InMemoryAttemptStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def history():
    return RecordingHistory()


@pytest.fixture
def coordinator(directory, request_store, attempt_store, notifier, history, clock):
    return build_coordinator(
        directory=directory,
        requests=request_store,
        attempts=attempt_store,
        notifier=notifier,
        history=history,
        clock=clock,
    )
