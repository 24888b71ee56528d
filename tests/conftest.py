"""Shared test fixtures."""

import itertools
import os

import pytest

from pipetrak.offline.offline_queue import OfflineQueue
from pipetrak.offline.store import MemoryStore
from pipetrak.sync.remote import (
    MutationResult,
    RemoteFailure,
    RemoteMutationClient,
)
from pipetrak.sync.sync_manager import Clock, SyncManager

# Headless runs: let pytest-qt create its QApplication without a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

MOCK_NOW = 1729785600000


class FakeClock(Clock):
    """Clock whose waits return instantly and advance virtual time."""

    def __init__(self):
        self.now = 0.0
        self.waits: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def now_ms(self) -> int:
        return MOCK_NOW + int(self.now * 1000)

    def wait(self, seconds, cancel_event) -> bool:
        self.waits.append(seconds)
        self.now += seconds
        return cancel_event.is_set()


class FakeRemoteClient(RemoteMutationClient):
    """Scripted remote: replays queued results, then the default."""

    def __init__(self):
        self.requests = []
        self.script = []
        self.default = self.ok()

    @staticmethod
    def ok(data=None) -> MutationResult:
        return MutationResult.success(data or {"component": {}})

    @staticmethod
    def error(status, message="Server error") -> MutationResult:
        return MutationResult.failed(RemoteFailure.from_status(status, message))

    def respond(self, *results):
        self.script.extend(results)
        return self

    def fail_always(self, status, message="Server error"):
        self.default = self.error(status, message)
        return self

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def apply_update(self, request):
        self.requests.append(request)
        result = self.script.pop(0) if self.script else self.default
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def store():
    """Provide an empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def queue(store):
    """OfflineQueue with deterministic ids and a fixed clock."""
    counter = itertools.count()
    return OfflineQueue(
        store,
        now_ms=lambda: MOCK_NOW,
        id_factory=lambda: f"mock-uuid-{next(counter)}",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return FakeRemoteClient()


@pytest.fixture
def manager(queue, remote, clock):
    """SyncManager over the shared queue, fake remote and fake clock."""
    return SyncManager(queue, remote, clock=clock)
