"""
Pytest configuration and fixtures for spydbg tests.
"""
import pytest

from spydbg.store import SnapshotStore


@pytest.fixture
def store():
    """Snapshot store with a recorder subscribed to every notification."""
    store = SnapshotStore()
    yield store
    store.close()


@pytest.fixture
def recorder(store):
    received = []
    store.subscribe(received.append)

    def drain():
        store.bus.pump()
        return received

    return drain
