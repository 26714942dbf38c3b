"""Tests for LevelTracker: accepting user intents and driving sync triggers."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from levelsync.application.date_table import DateStateTable
from levelsync.application.sync_queue import SyncQueue
from levelsync.application.tracker import LevelTracker
from levelsync.domain.errors import InvalidInput, PersistenceFailure
from levelsync.domain.models import QueueStatus
from levelsync.infrastructure.adapters.stores import MemoryStateStore


class WriteBudgetStore(MemoryStateStore):
    """Accepts ``budget`` writes, then fails every one after (disk full)."""

    def __init__(self, budget):
        super().__init__()
        self.budget = budget
        self.closed = False

    def save_many(self, blobs):
        if self.writes >= self.budget:
            raise PersistenceFailure(", ".join(blobs), "disk full")
        super().save_many(blobs)

    def close(self):
        self.closed = True


@pytest.fixture
def tracker(table, queue, client):
    return LevelTracker(table, queue, client=client, flush_interval=0.01)


@pytest.mark.asyncio
async def test_end_to_end_change_is_delivered(tracker, client):
    state = tracker.set_level("2024-03-01", 2, 3)

    assert tracker.queue.length == 1
    record = tracker.queue.head
    assert (record.date, record.index, record.new_level) == ("2024-03-01", 2, 3)
    assert record.created_at == state.updated_at

    await tracker.queue.wait_for_drain()

    assert tracker.queue.length == 0
    assert client.calls == [record.id]
    assert tracker.get_state("2024-03-01").levels[2] == 3


@pytest.mark.asyncio
async def test_state_is_independent_of_delivery_outcome(tracker, client):
    client.results = [False]

    tracker.set_level("2024-03-01", 2, 3)
    await tracker.queue.wait_for_drain()

    assert tracker.queue.status is QueueStatus.BLOCKED
    assert tracker.get_state("2024-03-01").levels[2] == 3


def test_toggle_cycles_through_levels(tracker):
    levels = [tracker.toggle("2024-03-01", 0).levels[0] for _ in range(5)]

    assert levels == [1, 2, 3, 0, 1]
    assert tracker.queue.length == 5


@pytest.mark.parametrize("index", [-1, 6])
def test_rejected_change_touches_nothing(tracker, store, index):
    with pytest.raises(InvalidInput):
        tracker.set_level("2024-03-01", index, 1)

    assert not tracker.table.has_state("2024-03-01")
    assert tracker.queue.length == 0
    assert store.writes == 0


def test_write_failure_applies_nothing(client, clock):
    store = WriteBudgetStore(budget=1)
    tracker = LevelTracker(DateStateTable(store, clock=clock), SyncQueue(store, client))
    tracker.set_level("2024-03-01", 0, 2)
    stored = dict(store.blobs)
    before = tracker.get_state("2024-03-01")

    with pytest.raises(PersistenceFailure):
        tracker.set_level("2024-03-01", 0, 3)
    with pytest.raises(PersistenceFailure):
        tracker.set_level("2024-03-07", 1, 1)

    assert tracker.get_state("2024-03-01") == before
    assert not tracker.table.has_state("2024-03-07")
    assert tracker.queue.length == 1
    assert store.blobs == stored


def test_first_write_failing_leaves_store_empty(client, clock):
    store = WriteBudgetStore(budget=0)
    tracker = LevelTracker(DateStateTable(store, clock=clock), SyncQueue(store, client))

    with pytest.raises(PersistenceFailure):
        tracker.set_level("2024-03-01", 0, 3)

    assert not tracker.table.has_state("2024-03-01")
    assert tracker.queue.length == 0
    assert store.blobs == {}
    reopened = DateStateTable(store, clock=clock)
    assert len(reopened) == 0


def test_table_and_queue_must_share_a_store(table, client):
    with pytest.raises(ValueError):
        LevelTracker(table, SyncQueue(MemoryStateStore(), client))


@pytest.mark.asyncio
async def test_stop_closes_store_and_client(client, clock):
    store = WriteBudgetStore(budget=10)
    tracker = LevelTracker(DateStateTable(store, clock=clock), SyncQueue(store, client))

    await tracker.stop()

    assert store.closed is True
    assert client.closed is True

@pytest.mark.asyncio
async def test_connectivity_restored_drains(tracker, client):
    tracker.set_online(False)
    tracker.set_level("2024-03-01", 1, 1)
    await tracker.queue.wait_for_drain()
    assert client.calls == []

    tracker.set_online(True)
    await tracker.queue.wait_for_drain()

    assert tracker.queue.length == 0


@pytest.mark.asyncio
async def test_manual_flush_retries_blocked_head(tracker, client):
    client.results = [False]
    tracker.set_level("2024-03-01", 1, 1)
    await tracker.queue.wait_for_drain()

    status = await tracker.flush()

    assert status is QueueStatus.IDLE
    assert tracker.queue.length == 0


@pytest.mark.asyncio
async def test_flush_with_probe_goes_offline_when_unreachable(tracker, client):
    client.results = [False]
    tracker.set_level("2024-03-01", 1, 1)
    await tracker.queue.wait_for_drain()
    client.is_reachable = AsyncMock(return_value=False)

    status = await tracker.flush(probe=True)

    assert tracker.queue.online is False
    assert status is QueueStatus.BLOCKED
    assert tracker.queue.length == 1


@pytest.mark.asyncio
async def test_periodic_tick_retries(tracker, client):
    client.results = [False]
    tracker.set_level("2024-03-01", 1, 1)
    await tracker.queue.wait_for_drain()
    assert tracker.queue.length == 1

    tracker.start()
    for _ in range(100):
        if tracker.queue.length == 0:
            break
        await asyncio.sleep(0.01)
    await tracker.stop()

    assert tracker.queue.length == 0
    assert client.closed is True


def test_labels(tracker):
    assert tracker.label(0) == "none"
    assert tracker.label(3) == "unreasonable"
    assert tracker.label(7) == "level 7"
