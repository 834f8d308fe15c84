"""
Local record stores.

The local store is the single source of truth for records. Two backends
share the same contract:

    # Durable, for applications
    from offline_notes_sync.store import SQLiteRecordStore, SQLiteStoreConfig

    # In-memory, for tests and ephemeral engines
    from offline_notes_sync.store import InMemoryRecordStore
"""

from .base import RecordStore
from .memory import InMemoryRecordStore
from .sqlite import SQLiteRecordStore, SQLiteStoreConfig

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "SQLiteStoreConfig",
]
