from .remote import HttpSyncClient, SimulatedSyncClient
from .stores import JsonFileStore, MemoryStateStore, SqliteStateStore

__all__ = [
    "HttpSyncClient",
    "SimulatedSyncClient",
    "JsonFileStore",
    "MemoryStateStore",
    "SqliteStateStore",
]
