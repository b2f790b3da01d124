from .schemas import (
    AFTERHANDLER_TYPES,
    DEEP_LINK,
    LEDGER,
    SEARCH_INDEX,
    AfterhandlerQueueEntry,
    AfterhandlerType,
    KeySyncStatus,
    QueuedHistory,
)
from .store import JsonlQueueStore, QueueStore, QueueStoreError

__all__ = [
    "AFTERHANDLER_TYPES",
    "DEEP_LINK",
    "LEDGER",
    "SEARCH_INDEX",
    "AfterhandlerQueueEntry",
    "AfterhandlerType",
    "JsonlQueueStore",
    "KeySyncStatus",
    "QueueStore",
    "QueueStoreError",
    "QueuedHistory",
]
