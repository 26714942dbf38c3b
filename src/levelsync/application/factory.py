"""
Backend Factory
Centralizes the logic for selecting store and remote adapters, and wiring
them into a LevelTracker.
"""

import logging

from levelsync.application.config import AppConfig
from levelsync.application.date_table import DateStateTable
from levelsync.application.sync_queue import StatusListener, SyncQueue
from levelsync.application.tracker import LevelTracker
from levelsync.domain.ports import RemoteSyncClient, StateStore
from levelsync.infrastructure.adapters.remote import HttpSyncClient, SimulatedSyncClient
from levelsync.infrastructure.adapters.stores import (
    JsonFileStore,
    MemoryStateStore,
    SqliteStateStore,
)

logger = logging.getLogger(__name__)


def get_state_store(config: AppConfig) -> StateStore:
    """
    Returns the StateStore implementation selected by config.
    """
    if config.store_backend == "memory":
        return MemoryStateStore()

    if config.store_backend == "sqlite":
        return SqliteStateStore(config.data_dir / "levelsync.db")

    return JsonFileStore(config.data_dir)


def get_sync_client(config: AppConfig) -> RemoteSyncClient:
    """
    Returns the RemoteSyncClient implementation selected by config.
    """
    if config.remote_backend == "http" and config.sync_url:
        logger.debug(f"Remote: HTTP {config.sync_url}")
        return HttpSyncClient(url=config.sync_url, timeout=config.request_timeout)

    logger.debug("Remote: simulated")
    return SimulatedSyncClient(delay=config.simulated_delay)


def build_tracker(
    config: AppConfig,
    store: StateStore | None = None,
    client: RemoteSyncClient | None = None,
    on_status: StatusListener | None = None,
) -> LevelTracker:
    """Wire a LevelTracker from config. Explicit store/client win over config."""
    store = store or get_state_store(config)
    client = client or get_sync_client(config)

    table = DateStateTable(
        store,
        toggle_count=config.toggle_count,
        level_count=config.level_count,
        key=config.states_key,
    )
    queue = SyncQueue(store, client, key=config.queue_key, on_status=on_status)
    return LevelTracker(table, queue, client=client, flush_interval=config.flush_interval)
