"""
Ports (interfaces) for persistence and remote delivery.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import ChangeRecord


class StateStore(ABC):
    """
    Port for durable key/value persistence of serialized blobs.

    Implementations:
        - JsonFileStore: One atomically-replaced JSON file per key.
        - SqliteStateStore: A single key/value table in SQLite.
        - MemoryStateStore: Process-local dict, for tests and ephemeral runs.
    """

    @abstractmethod
    def load(self, key: str) -> str | None:
        """
        Read the blob stored under ``key``.

        Returns:
            The blob, or None if nothing has been saved under ``key``.

        Raises:
            PersistenceFailure: If a blob exists but cannot be read.
        """
        pass

    @abstractmethod
    def save(self, key: str, blob: str) -> None:
        """
        Durably replace the blob stored under ``key``.

        Raises:
            PersistenceFailure: If the write did not complete. Callers must
                treat the previous blob as still current.
        """
        pass

    @abstractmethod
    def save_many(self, blobs: dict[str, str]) -> None:
        """
        Durably replace several blobs as one unit.

        Raises:
            PersistenceFailure: If the write did not complete. None of the
                previous blobs have been replaced.
        """
        pass

    def close(self) -> None:
        """Release any handle the store holds open."""
        pass


class RemoteSyncClient(ABC):
    """
    Port for delivering one change record to the remote service.

    Implementations must tolerate being called more than once with the same
    record id.
    """

    @abstractmethod
    async def deliver(self, record: ChangeRecord) -> bool:
        """
        Attempt delivery of ``record``.

        Returns:
            True if the remote side accepted the record, False otherwise.

        Raises:
            DeliveryFailure: On transport failure.
        """
        pass

    async def is_reachable(self) -> bool:
        """Best-effort probe of the remote endpoint."""
        return True

    async def aclose(self) -> None:
        pass
