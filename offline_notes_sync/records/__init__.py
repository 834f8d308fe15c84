"""
Record model for offline notes sync.

Defines the versioned note record and its sync-state machine.
"""

from .types import DEFAULT_TITLE, NotePayload, PushAction, Record, SyncState, utc_now

__all__ = [
    "DEFAULT_TITLE",
    "NotePayload",
    "PushAction",
    "Record",
    "SyncState",
    "utc_now",
]
