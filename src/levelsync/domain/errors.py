"""Error kinds raised by the levelsync core."""


class LevelSyncError(Exception):
    """Base class for every levelsync error."""


class InvalidInput(LevelSyncError, ValueError):
    """Out-of-range index or level, malformed date key, or duplicate record id.

    Raised before any state changes.
    """


class PersistenceFailure(LevelSyncError):
    """A durable read or write failed.

    The operation that hit it has been rolled back.
    """

    def __init__(self, key: str, reason: str):
        super().__init__(f"persistence failure for '{key}': {reason}")
        self.key = key
        self.reason = reason


class DeliveryFailure(LevelSyncError):
    """Transport-level failure while delivering a change record.

    Clients raise it; the sync queue absorbs it into its BLOCKED status.
    """
