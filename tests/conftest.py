import asyncio

import pytest

from levelsync.application.date_table import DateStateTable
from levelsync.application.sync_queue import SyncQueue
from levelsync.domain.models import ChangeRecord
from levelsync.domain.ports import RemoteSyncClient
from levelsync.infrastructure.adapters.stores import MemoryStateStore


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = 1_709_251_200_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


class ScriptedClient(RemoteSyncClient):
    """
    Remote client whose answers are scripted in order.

    Each entry in ``results`` is a bool to return or an exception to raise;
    once exhausted every delivery succeeds. ``gate`` (if set) must be opened
    before any delivery completes.
    """

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.on_deliver = None
        self.closed = False

    async def deliver(self, record: ChangeRecord) -> bool:
        self.calls.append(record.id)
        if self.on_deliver is not None:
            self.on_deliver(record)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def table(store, clock):
    return DateStateTable(store, toggle_count=6, level_count=4, clock=clock)


@pytest.fixture
def queue(store, client):
    return SyncQueue(store, client)


@pytest.fixture
def make_record(clock):
    """Factory for change records stamped by the fake clock."""

    def _make(date_key="2024-03-01", index=0, level=1):
        return ChangeRecord.create(date_key, index, level, clock.advance())

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    return home
