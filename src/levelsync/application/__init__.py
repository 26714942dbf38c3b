# Application Package
from .date_table import DateStateTable
from .sync_queue import SyncQueue
from .tracker import LevelTracker, QueueSnapshot

__all__ = ["DateStateTable", "SyncQueue", "LevelTracker", "QueueSnapshot"]
