"""
State store adapters: infrastructure implementations of StateStore.

Every adapter is synchronous and surfaces write failures as PersistenceFailure.
"""

import logging
import os
import sqlite3
import tempfile
from pathlib import Path

from levelsync.domain.errors import PersistenceFailure
from levelsync.domain.ports import StateStore

logger = logging.getLogger(__name__)


class JsonFileStore(StateStore):
    """
    Stores each key as ``<directory>/<key>.json``.

    Writes go to a temp file in the same directory which is fsynced and then
    moved over the target with ``os.replace``, so a crash leaves either the
    old blob or the new one, never a torn file. ``save_many`` writes every
    temp file before replacing any target, and puts back the old blobs if a
    replace fails part way.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(key, str(e)) from e

    def save(self, key: str, blob: str) -> None:
        self.save_many({key: blob})

    def save_many(self, blobs: dict[str, str]) -> None:
        keys = ", ".join(blobs)
        previous = {key: self.load(key) for key in blobs}
        temps: dict[str, str] = {}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            for key, blob in blobs.items():
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.directory,
                    prefix=f".{key}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    temps[key] = tmp.name
                    tmp.write(blob)
                    tmp.flush()
                    os.fsync(tmp.fileno())
        except OSError as e:
            _discard(temps.values())
            logger.error(f"Failed to write {keys} under {self.directory}: {e}")
            raise PersistenceFailure(keys, str(e)) from e

        replaced: list[str] = []
        try:
            for key, tmp_name in temps.items():
                os.replace(tmp_name, self._path(key))
                replaced.append(key)
        except OSError as e:
            _discard(name for key, name in temps.items() if key not in replaced)
            self._revert(replaced, previous)
            logger.error(f"Failed to replace {keys} under {self.directory}: {e}")
            raise PersistenceFailure(keys, str(e)) from e
        logger.debug(f"[store] wrote {keys}")

    def _revert(self, keys: list[str], previous: dict[str, str | None]) -> None:
        for key in keys:
            try:
                if previous[key] is None:
                    self._path(key).unlink(missing_ok=True)
                else:
                    self.save(key, previous[key])
            except (OSError, PersistenceFailure) as e:
                logger.error(f"Could not put back previous '{key}': {e}")


def _discard(names) -> None:
    for name in names:
        if os.path.exists(name):
            os.unlink(name)


class SqliteStateStore(StateStore):
    """Stores blobs in a single ``kv`` table; one committed transaction per save."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._conn.commit()

    def load(self, key: str) -> str | None:
        try:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure(key, str(e)) from e
        return row[0] if row else None

    def save(self, key: str, blob: str) -> None:
        self.save_many({key: blob})

    def save_many(self, blobs: dict[str, str]) -> None:
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT INTO kv (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    list(blobs.items()),
                )
        except sqlite3.Error as e:
            keys = ", ".join(blobs)
            logger.error(f"Failed to write {keys} to {self.db_path}: {e}")
            raise PersistenceFailure(keys, str(e)) from e

    def close(self) -> None:
        self._conn.close()


class MemoryStateStore(StateStore):
    """Dict-backed store. ``fail_writes`` makes every save raise.

    ``writes`` counts successful save calls; a ``save_many`` counts once.
    """

    def __init__(self, initial: dict[str, str] | None = None, fail_writes: bool = False):
        self.blobs: dict[str, str] = dict(initial or {})
        self.fail_writes = fail_writes
        self.writes = 0

    def load(self, key: str) -> str | None:
        return self.blobs.get(key)

    def save(self, key: str, blob: str) -> None:
        self.save_many({key: blob})

    def save_many(self, blobs: dict[str, str]) -> None:
        if self.fail_writes:
            raise PersistenceFailure(", ".join(blobs), "writes disabled")
        self.blobs.update(blobs)
        self.writes += 1
