"""
Level Tracker: composes the date table and the sync queue.

This is the surface presentation adapters talk to: user toggles,
connectivity changes, manual flushes and the periodic tick all land here.
"""

import asyncio
import logging
from dataclasses import dataclass

from levelsync.domain.constants import FLUSH_INTERVAL, LEVEL_LABELS
from levelsync.domain.errors import PersistenceFailure
from levelsync.domain.models import ChangeRecord, DateState, QueueStatus
from levelsync.domain.ports import RemoteSyncClient

from .date_table import DateStateTable
from .sync_queue import SyncQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueSnapshot:
    length: int
    status: QueueStatus
    online: bool
    head: ChangeRecord | None


class LevelTracker:
    def __init__(
        self,
        table: DateStateTable,
        queue: SyncQueue,
        client: RemoteSyncClient | None = None,
        flush_interval: float = FLUSH_INTERVAL,
    ):
        if table.store is not queue.store:
            raise ValueError("date table and sync queue must share one state store")
        self.table = table
        self.queue = queue
        self._store = table.store
        self._client = client
        self.flush_interval = flush_interval
        self._ticker: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    def get_state(self, date_key: str) -> DateState:
        return self.table.get_state(date_key)

    def label(self, level: int) -> str:
        if level < len(LEVEL_LABELS):
            return LEVEL_LABELS[level]
        return f"level {level}"

    def toggle(self, date_key: str, index: int) -> DateState:
        """Advance toggle ``index`` to its next level."""
        return self.set_level(date_key, index, self.table.next_level(date_key, index))

    def set_level(self, date_key: str, index: int, level: int) -> DateState:
        """
        Accept a level change: persist the new state and its change record
        together, then let the queue drain.

        Raises:
            InvalidInput: Rejected before anything changed.
            PersistenceFailure: Neither the table nor the queue changed.
        """
        states = self.table.stage_change(date_key, index, level)
        state = states[date_key]
        record = ChangeRecord.create(date_key, index, level, state.updated_at)
        records = self.queue.stage_enqueue(record)
        try:
            self._store.save_many(
                {
                    self.table.key: self.table.serialize(states),
                    self.queue.key: self.queue.serialize(records),
                }
            )
        except PersistenceFailure:
            logger.error(f"Could not save change for {date_key}; nothing was applied")
            raise
        self.table.adopt(states)
        self.queue.adopt(records)
        return state

    # ------------------------------------------------------------------
    # Sync triggers
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        self.queue.set_online(online)

    async def flush(self, probe: bool = False) -> QueueStatus:
        """Manual flush. With ``probe``, first ask the client if the remote is up."""
        if probe and self._client is not None:
            self.queue.set_online(await self._client.is_reachable())
            await self.queue.wait_for_drain()
        return await self.queue.process_queue()

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            length=self.queue.length,
            status=self.queue.status,
            online=self.queue.online,
            head=self.queue.head,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            if self.queue.online:
                await self.queue.process_queue()

    def start(self) -> None:
        """Start the periodic flush tick on the running loop."""
        if self._ticker is None:
            self._ticker = asyncio.get_running_loop().create_task(self._tick())
            logger.debug(f"Periodic flush every {self.flush_interval}s")

    async def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        await self.queue.wait_for_drain()
        if self._client is not None:
            await self._client.aclose()
        self._store.close()
