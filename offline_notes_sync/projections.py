"""
Read-only projections of engine state for a notes screen.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .live import LiveValue, combine
from .records import Record
from .sync.coordinator import SyncStatus


@dataclass(frozen=True)
class NotesScreenState:
    """Everything a notes list screen renders."""

    notes: list[Record] = field(default_factory=list)
    is_loading: bool = False
    sync_status: SyncStatus = SyncStatus.IDLE
    is_online: bool = True
    pending_changes_count: int = 0
    last_error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.notes and not self.is_loading

    @property
    def can_retry(self) -> bool:
        return self.last_error is not None or self.sync_status is SyncStatus.FAILED


def observe_screen_state(
    notes: LiveValue[list[Record]],
    is_loading: LiveValue[bool],
    sync_status: LiveValue[SyncStatus],
    is_online: LiveValue[bool],
    pending_count: LiveValue[int],
    last_error: LiveValue[str | None],
) -> LiveValue[NotesScreenState]:
    """Combine the engine's live values into one screen state."""
    return combine(
        notes,
        is_loading,
        sync_status,
        is_online,
        pending_count,
        last_error,
        fn=lambda n, loading, status, online, pending, error: NotesScreenState(
            notes=n,
            is_loading=loading,
            sync_status=status,
            is_online=online,
            pending_changes_count=pending,
            last_error=error,
        ),
    )
