"""
Date State Table: the single owner of per-date levels.

Rehydrated from the state store at construction. ``apply_change`` is the
only mutation path; it persists the whole table and rolls back on failure.
"""

import json
import logging
from collections.abc import Callable

from levelsync.domain.constants import (
    DEFAULT_LEVEL_COUNT,
    DEFAULT_TOGGLE_COUNT,
    STATES_KEY,
    TABLE_FORMAT_VERSION,
)
from levelsync.domain.errors import InvalidInput, PersistenceFailure
from levelsync.domain.models import DateState, now_ms, validate_date_key
from levelsync.domain.ports import StateStore

logger = logging.getLogger(__name__)


class DateStateTable:
    def __init__(
        self,
        store: StateStore,
        toggle_count: int = DEFAULT_TOGGLE_COUNT,
        level_count: int = DEFAULT_LEVEL_COUNT,
        key: str = STATES_KEY,
        clock: Callable[[], int] = now_ms,
    ):
        if toggle_count < 1 or level_count < 2:
            raise ValueError("need at least one toggle and two levels")
        self._store = store
        self.toggle_count = toggle_count
        self.level_count = level_count
        self._key = key
        self._clock = clock
        self._states: dict[str, DateState] = self._load()

    def _load(self) -> dict[str, DateState]:
        blob = self._store.load(self._key)
        if not blob:
            return {}
        try:
            states = {
                validate_date_key(date_key): self._fit(date_key, DateState.from_dict(raw))
                for date_key, raw in json.loads(blob)["dates"].items()
            }
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise PersistenceFailure(self._key, f"unreadable table: {e!r}") from e
        logger.debug(f"Loaded {len(states)} dated states from '{self._key}'")
        return states

    def _fit(self, date_key: str, state: DateState) -> DateState:
        if len(state.levels) == self.toggle_count:
            return state
        logger.warning(
            f"{date_key}: stored {len(state.levels)} levels, "
            f"expected {self.toggle_count}; resizing"
        )
        levels = (state.levels + (0,) * self.toggle_count)[: self.toggle_count]
        return DateState(levels=levels, updated_at=state.updated_at)

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def key(self) -> str:
        return self._key

    def serialize(self, states: dict[str, DateState]) -> str:
        return json.dumps(
            {
                "version": TABLE_FORMAT_VERSION,
                "dates": {k: s.to_dict() for k, s in sorted(states.items())},
            }
        )

    def _commit(self, states: dict[str, DateState]) -> None:
        # Raises PersistenceFailure before anything in memory is touched.
        self._store.save(self._key, self.serialize(states))
        self._states = states

    def adopt(self, states: dict[str, DateState]) -> None:
        """Take ``states`` as current once the caller has persisted them."""
        self._states = states

    def __len__(self) -> int:
        return len(self._states)

    def dates(self) -> list[str]:
        return sorted(self._states)

    def has_state(self, date_key: str) -> bool:
        return validate_date_key(date_key) in self._states

    def get_state(self, date_key: str) -> DateState:
        """Persisted state for the date, or an all-zero state stamped now."""
        validate_date_key(date_key)
        state = self._states.get(date_key)
        if state is None:
            return DateState.zero(self.toggle_count, self._clock())
        return state

    def next_level(self, date_key: str, index: int) -> int:
        """Level a toggle press moves ``index`` to (wraps back to 0)."""
        self._check_index(index)
        return (self.get_state(date_key).levels[index] + 1) % self.level_count

    def stage_change(self, date_key: str, index: int, new_level: int) -> dict[str, DateState]:
        """
        Validate a change and return the whole table as it would be after it.
        Nothing is written and the current table is untouched.

        Raises:
            InvalidInput: Bad date key, index or level.
        """
        validate_date_key(date_key)
        self._check_index(index)
        if isinstance(new_level, bool) or not isinstance(new_level, int):
            raise InvalidInput(f"level must be an integer, got {new_level!r}")
        if not 0 <= new_level < self.level_count:
            raise InvalidInput(f"level {new_level} outside 0..{self.level_count - 1}")

        current = self._states.get(date_key) or DateState.zero(self.toggle_count, 0)
        return {**self._states, date_key: current.with_level(index, new_level, self._clock())}

    def apply_change(self, date_key: str, index: int, new_level: int) -> DateState:
        """
        Set ``levels[index]`` for the date and persist the whole table.

        Raises:
            InvalidInput: Bad date key, index or level. Nothing changes.
            PersistenceFailure: The write failed. The table is left as it was.
        """
        states = self.stage_change(date_key, index, new_level)
        self._commit(states)
        logger.debug(f"[table] {date_key}[{index}] -> {new_level}")
        return states[date_key]

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidInput(f"toggle index must be an integer, got {index!r}")
        if not 0 <= index < self.toggle_count:
            raise InvalidInput(f"toggle index {index} outside 0..{self.toggle_count - 1}")
