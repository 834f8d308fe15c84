"""
Offline Notes Sync

Offline-first note storage with background reconciliation against a
remote authority.

Provides:
- A local store that is the single source of truth (SQLite or in-memory)
- A per-note sync-state machine (pending create/update/delete, failed)
- Push-then-pull reconciliation with last-write-observed-wins pulls
- A single-flight background scheduler with exponential backoff
- Live values for notes, pending count, connectivity and sync status

Usage:

    >>> from offline_notes_sync import SyncSettings, create_engine
    >>> engine = await create_engine(SyncSettings(db_path="~/.offline-notes/notes.db"))
    >>> await engine.initial_load()
    >>> note = await engine.create_record("Groceries", "milk, eggs")
    >>> async for state in engine.screen_state.subscribe():
    ...     render(state)

Store Selection:

    # SQLite for applications
    from offline_notes_sync.store import SQLiteRecordStore, SQLiteStoreConfig

    # In-memory for tests
    from offline_notes_sync.store import InMemoryRecordStore

Remote:

    # Any transport implementing RemoteGateway
    from offline_notes_sync.remote import RemoteGateway

    # Simulator, optionally persisted to a JSON file
    from offline_notes_sync.remote import SimulatedRemoteGateway, FileRemoteGateway
"""

from .config import SyncSettings
from .engine import NotesSyncEngine, create_engine
from .exceptions import (
    LocalStoreError,
    NetworkFailureError,
    NoConnectionError,
    NotesSyncError,
    NotFoundRemotelyError,
    RecordNotFoundError,
    RemoteGatewayError,
    RemoteRejectedError,
    SchedulerExhaustedError,
    StorageIOError,
    ValidationError,
)
from .live import LiveValue, Subscription, combine
from .projections import NotesScreenState, observe_screen_state
from .records import NotePayload, PushAction, Record, SyncState
from .remote import FileRemoteGateway, RemoteGateway, SimulatedRemoteGateway
from .repository import NoteRepository
from .store import InMemoryRecordStore, RecordStore, SQLiteRecordStore, SQLiteStoreConfig
from .sync import (
    BackoffPolicy,
    ConnectivityMonitor,
    ReconcileResult,
    Reconciler,
    SyncCoordinator,
    SyncScheduler,
    SyncStatus,
    derive_status,
)

__all__ = [
    # Engine
    "NotesSyncEngine",
    "create_engine",
    "SyncSettings",
    # Records
    "Record",
    "NotePayload",
    "SyncState",
    "PushAction",
    # Live values
    "LiveValue",
    "Subscription",
    "combine",
    "NotesScreenState",
    "observe_screen_state",
    # Store
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "SQLiteStoreConfig",
    # Remote
    "RemoteGateway",
    "SimulatedRemoteGateway",
    "FileRemoteGateway",
    # Sync
    "NoteRepository",
    "Reconciler",
    "ReconcileResult",
    "SyncCoordinator",
    "SyncScheduler",
    "BackoffPolicy",
    "ConnectivityMonitor",
    "SyncStatus",
    "derive_status",
    # Exceptions
    "NotesSyncError",
    "NoConnectionError",
    "RemoteGatewayError",
    "NetworkFailureError",
    "RemoteRejectedError",
    "NotFoundRemotelyError",
    "SchedulerExhaustedError",
    "LocalStoreError",
    "RecordNotFoundError",
    "ValidationError",
    "StorageIOError",
]

__version__ = "0.1.0"
