"""
Sync Queue: durable FIFO of change records and its drain loop.

State machine::

    IDLE ──process_queue()──► DRAINING ──queue empty / offline──► IDLE
                                 │
                                 └──delivery failed──► BLOCKED ──trigger──► DRAINING

Delivery is strictly head-of-line: a failed head is never skipped and never
retried within the same drain. Every mutation is persisted before it is
applied in memory, so the stored queue always matches the in-memory one.
"""

import asyncio
import json
import logging
from collections.abc import Callable

from levelsync.domain.constants import QUEUE_KEY
from levelsync.domain.errors import InvalidInput, PersistenceFailure
from levelsync.domain.models import ChangeRecord, QueueStatus
from levelsync.domain.ports import RemoteSyncClient, StateStore

logger = logging.getLogger(__name__)

StatusListener = Callable[[QueueStatus, int], None]


class SyncQueue:
    def __init__(
        self,
        store: StateStore,
        client: RemoteSyncClient,
        key: str = QUEUE_KEY,
        online: bool = True,
        on_status: StatusListener | None = None,
    ):
        self._store = store
        self._client = client
        self._key = key
        self._online = online
        self._on_status = on_status
        self._status = QueueStatus.IDLE
        self._records: list[ChangeRecord] = self._load()
        self._drain_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[ChangeRecord]:
        blob = self._store.load(self._key)
        if not blob:
            return []
        try:
            records = [ChangeRecord.from_dict(raw) for raw in json.loads(blob)]
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceFailure(self._key, f"unreadable queue: {e}") from e
        logger.info(f"Restored {len(records)} pending change(s) from '{self._key}'")
        return records

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def key(self) -> str:
        return self._key

    def serialize(self, records: list[ChangeRecord]) -> str:
        return json.dumps([r.to_dict() for r in records])

    def _commit(self, records: list[ChangeRecord]) -> None:
        self._store.save(self._key, self.serialize(records))
        self._records = records
        self._notify()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def status(self) -> QueueStatus:
        return self._status

    @property
    def online(self) -> bool:
        return self._online

    @property
    def length(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[ChangeRecord, ...]:
        return tuple(self._records)

    @property
    def head(self) -> ChangeRecord | None:
        return self._records[0] if self._records else None

    def _set_status(self, status: QueueStatus) -> None:
        if status is not self._status:
            logger.debug(f"[queue] {self._status.value} -> {status.value}")
            self._status = status
            self._notify()

    def _notify(self) -> None:
        if self._on_status is not None:
            self._on_status(self._status, len(self._records))

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def enqueue(self, record: ChangeRecord) -> None:
        """
        Append ``record`` durably, then kick a drain if one can start.

        Raises:
            InvalidInput: A record with the same id is already queued.
            PersistenceFailure: The queue could not be written; nothing changed.
        """
        records = self.stage_enqueue(record)
        self._store.save(self._key, self.serialize(records))
        self.adopt(records)

    def stage_enqueue(self, record: ChangeRecord) -> list[ChangeRecord]:
        """The queue as it would be with ``record`` appended. Nothing is written."""
        if any(r.id == record.id for r in self._records):
            raise InvalidInput(f"change {record.id} is already queued")
        return [*self._records, record]

    def adopt(self, records: list[ChangeRecord]) -> None:
        """Take persisted ``records`` as current and kick a drain if one can start."""
        self._records = records
        self._notify()
        if records:
            last = records[-1]
            logger.debug(f"[queue] enqueued {last.id} ({last.date}[{last.index}]={last.new_level})")
        self.trigger_drain()

    def set_online(self, online: bool) -> None:
        """Update connectivity belief; coming back online triggers a drain."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivity restored, draining sync queue")
            self.trigger_drain()
        elif not online and was_online:
            logger.info("Connectivity lost, sync paused")

    def trigger_drain(self) -> None:
        """Start a background drain on the running loop if one can start."""
        if self._status is QueueStatus.DRAINING or not self._online or not self._records:
            return
        if any(not t.done() for t in self._drain_tasks):
            # A scheduled drain has not started yet; it will see this record.
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the record waits for the next explicit trigger.
            return
        task = loop.create_task(self.process_queue())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def wait_for_drain(self) -> None:
        """Wait until every scheduled drain task has finished."""
        while self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks))

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    async def process_queue(self) -> QueueStatus:
        """
        Deliver queued records in order until the queue is empty, a delivery
        fails, or connectivity drops. Safe to call from any number of triggers;
        calls made while a drain is running return immediately.

        Returns:
            The queue status once this call is done.
        """
        if self._status is QueueStatus.DRAINING or not self._records or not self._online:
            return self._status

        self._set_status(QueueStatus.DRAINING)
        try:
            while self._records and self._online:
                head = self._records[0]
                if not await self._deliver(head):
                    self._record_failure(head)
                    self._set_status(QueueStatus.BLOCKED)
                    break
                if not self._remove_head(head):
                    self._set_status(QueueStatus.BLOCKED)
                    break
        finally:
            if self._status is QueueStatus.DRAINING:
                self._set_status(QueueStatus.IDLE)

        if self._records:
            logger.info(f"Sync paused with {len(self._records)} pending change(s)")
        return self._status

    async def _deliver(self, record: ChangeRecord) -> bool:
        try:
            return bool(await self._client.deliver(record))
        except Exception as e:
            logger.warning(f"Delivery of {record.id} failed (attempt {record.attempts + 1}): {e}")
            return False

    def _record_failure(self, head: ChangeRecord) -> None:
        updated = [head.with_failed_attempt(), *self._records[1:]]
        try:
            self._commit(updated)
        except PersistenceFailure as e:
            logger.error(f"Could not persist attempt count for {head.id}: {e}")

    def _remove_head(self, head: ChangeRecord) -> bool:
        try:
            self._commit(self._records[1:])
        except PersistenceFailure as e:
            # Delivered but still stored: it will be sent again.
            logger.error(f"Could not remove delivered change {head.id}: {e}")
            return False
        logger.debug(f"[queue] delivered {head.id}, {len(self._records)} left")
        return True
