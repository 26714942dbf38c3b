# Domain Package
from .errors import DeliveryFailure, InvalidInput, LevelSyncError, PersistenceFailure
from .models import ChangeRecord, DateState, QueueStatus
from .ports import RemoteSyncClient, StateStore

__all__ = [
    "ChangeRecord",
    "DateState",
    "QueueStatus",
    "StateStore",
    "RemoteSyncClient",
    "LevelSyncError",
    "InvalidInput",
    "PersistenceFailure",
    "DeliveryFailure",
]
