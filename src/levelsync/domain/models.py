"""
Domain models for per-date levels and pending sync changes.

These are pure data structures with no I/O or external dependencies.
"""

import re
import time
from dataclasses import asdict, dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any

from ulid import ULID

from .constants import CHANGE_ID_PREFIX
from .errors import InvalidInput

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def validate_date_key(value: str) -> str:
    """Return ``value`` if it is a real calendar date in YYYY-MM-DD form."""
    if not isinstance(value, str) or not _DATE_KEY_RE.match(value):
        raise InvalidInput(f"date key must look like YYYY-MM-DD, got {value!r}")
    try:
        date.fromisoformat(value)
    except ValueError as e:
        raise InvalidInput(f"not a calendar date: {value!r}") from e
    return value


def shift_date(value: str, days: int) -> str:
    """Move a date key by ``days`` (negative goes back)."""
    return (date.fromisoformat(validate_date_key(value)) + timedelta(days=days)).isoformat()


def generate_change_id() -> str:
    """Generate a globally unique, creation-sortable change id using ULID."""
    return f"{CHANGE_ID_PREFIX}{ULID()}"


class QueueStatus(str, Enum):
    """Lifecycle state of a sync queue."""

    IDLE = "idle"
    DRAINING = "draining"
    BLOCKED = "blocked"  # halted after a failed delivery, awaiting a trigger


@dataclass(frozen=True)
class DateState:
    """
    Known levels for one date.

    Attributes:
        levels: One level per tracked toggle.
        updated_at: Epoch ms of the most recently accepted change for the date.
    """

    levels: tuple[int, ...]
    updated_at: int

    @classmethod
    def zero(cls, toggle_count: int, now: int) -> "DateState":
        return cls(levels=(0,) * toggle_count, updated_at=now)

    def with_level(self, index: int, level: int, now: int) -> "DateState":
        levels = list(self.levels)
        levels[index] = level
        return DateState(levels=tuple(levels), updated_at=max(now, self.updated_at))

    def to_dict(self) -> dict[str, Any]:
        return {"levels": list(self.levels), "updated_at": self.updated_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DateState":
        return cls(
            levels=tuple(int(v) for v in data["levels"]),
            updated_at=int(data["updated_at"]),
        )


@dataclass(frozen=True)
class ChangeRecord:
    """
    A single accepted user mutation waiting for delivery.

    ``id`` is the idempotency key the remote side deduplicates on. Only
    ``attempts`` ever changes, through :meth:`with_failed_attempt`.
    """

    id: str
    date: str
    index: int
    new_level: int
    created_at: int
    attempts: int = 0

    @classmethod
    def create(cls, date_key: str, index: int, new_level: int, created_at: int) -> "ChangeRecord":
        return cls(
            id=generate_change_id(),
            date=date_key,
            index=index,
            new_level=new_level,
            created_at=created_at,
        )

    def with_failed_attempt(self) -> "ChangeRecord":
        return replace(self, attempts=self.attempts + 1)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeRecord":
        return cls(
            id=str(data["id"]),
            date=str(data["date"]),
            index=int(data["index"]),
            new_level=int(data["new_level"]),
            created_at=int(data["created_at"]),
            attempts=int(data.get("attempts", 0)),
        )

    def to_payload(self) -> dict[str, Any]:
        """Wire shape sent to the remote sync endpoint."""
        return {
            "id": self.id,
            "date": self.date,
            "index": self.index,
            "level": self.new_level,
            "timestamp": self.created_at,
            "attempts": self.attempts,
        }
