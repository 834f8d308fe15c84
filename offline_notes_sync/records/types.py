"""
Record types for offline notes sync.

A Record is one note plus the metadata the sync engine needs: which push
(if any) is outstanding and which server version was last accepted.
Records are immutable; every state change returns a new Record.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

DEFAULT_TITLE = "Untitled"


class SyncState(Enum):
    """Synchronization state of a single record.

    Values are the symbolic names persisted in storage.
    """

    SYNCED = "SYNCED"  # In sync with remote
    PENDING_CREATE = "PENDING_CREATE"  # Created locally, never accepted by remote
    PENDING_UPDATE = "PENDING_UPDATE"  # Edited locally since last accepted version
    PENDING_DELETE = "PENDING_DELETE"  # Deleted locally, removal not yet confirmed
    SYNC_FAILED = "SYNC_FAILED"  # Last push attempt failed

    @property
    def is_pending(self) -> bool:
        return self is not SyncState.SYNCED


class PushAction(Enum):
    """Remote call the reconciler must issue for a pending record."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class NotePayload:
    """Note content. Opaque to the engine beyond equality and emptiness."""

    title: str = ""
    content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.title.strip() and not self.content.strip()

    def normalized(self) -> NotePayload:
        """Trim both fields and give untitled notes a default title."""
        title = self.title.strip()
        return NotePayload(title=title or DEFAULT_TITLE, content=self.content.strip())

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotePayload:
        return cls(title=data.get("title", ""), content=data.get("content", ""))


def utc_now() -> datetime:
    """Current UTC time truncated to the millisecond stored on disk."""
    now = datetime.now(UTC)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MS = timedelta(milliseconds=1)


def to_epoch_ms(value: datetime) -> int:
    # Exact integer milliseconds, no float rounding
    return (value - EPOCH) // _MS


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


@dataclass(frozen=True)
class Record:
    """A note with identity and sync metadata.

    Attributes:
        id: Unique identifier, immutable once created
        payload: Note content
        created_at: Creation time (UTC)
        updated_at: Last local mutation or last accepted remote time (UTC)
        sync_state: Current synchronization state
        server_version: Version assigned by the remote; 0 means never accepted
        deleted: Set when a delete was requested, so a failed delete
            is retried as a delete
    """

    id: str
    payload: NotePayload
    created_at: datetime
    updated_at: datetime
    sync_state: SyncState = SyncState.SYNCED
    server_version: int = 0
    deleted: bool = False

    @classmethod
    def create(cls, payload: NotePayload, record_id: str | None = None) -> Record:
        """Create a new local record awaiting its first push."""
        now = utc_now()
        return cls(
            id=record_id or str(uuid.uuid4()),
            payload=payload,
            created_at=now,
            updated_at=now,
            sync_state=SyncState.PENDING_CREATE,
            server_version=0,
        )

    @property
    def title(self) -> str:
        return self.payload.title

    @property
    def content(self) -> str:
        return self.payload.content

    @property
    def is_synced(self) -> bool:
        return self.sync_state is SyncState.SYNCED

    @property
    def was_ever_pushed(self) -> bool:
        return self.server_version > 0

    def _touched(self) -> datetime:
        # updated_at never moves backwards, even if the clock does
        return max(utc_now(), self.updated_at)

    def edited(self, payload: NotePayload) -> Record:
        """Apply a local edit."""
        if self.sync_state is SyncState.PENDING_CREATE:
            state = SyncState.PENDING_CREATE
        elif self.was_ever_pushed:
            state = SyncState.PENDING_UPDATE
        else:
            # A failed create is still a create
            state = SyncState.PENDING_CREATE
        return replace(
            self,
            payload=payload,
            updated_at=self._touched(),
            sync_state=state,
            deleted=False,
        )

    def marked_for_deletion(self) -> Record:
        """Request deletion; removal waits for the remote to confirm."""
        return replace(
            self,
            updated_at=self._touched(),
            sync_state=SyncState.PENDING_DELETE,
            deleted=True,
        )

    def accepted(self, remote: Record) -> Record:
        """Adopt the remote's echo of this record."""
        return replace(
            remote,
            id=self.id,
            sync_state=SyncState.SYNCED,
            deleted=False,
        )

    def failed(self) -> Record:
        return replace(self, sync_state=SyncState.SYNC_FAILED)

    def marked_synced(self) -> Record:
        return replace(self, sync_state=SyncState.SYNCED, deleted=False)

    def retried(self) -> Record:
        """Move a failed record back to the pending state it failed in."""
        if self.sync_state is not SyncState.SYNC_FAILED:
            return self
        return replace(self, sync_state=self._pending_state())

    def _pending_state(self) -> SyncState:
        if self.deleted:
            return SyncState.PENDING_DELETE
        if self.server_version == 0:
            return SyncState.PENDING_CREATE
        return SyncState.PENDING_UPDATE

    @property
    def push_action(self) -> PushAction | None:
        """The remote call this record needs, or None when synced."""
        if self.sync_state is SyncState.SYNCED:
            return None
        state = self.sync_state
        if state is SyncState.SYNC_FAILED:
            state = self._pending_state()
        return {
            SyncState.PENDING_CREATE: PushAction.CREATE,
            SyncState.PENDING_UPDATE: PushAction.UPDATE,
            SyncState.PENDING_DELETE: PushAction.DELETE,
        }[state]

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_row(self) -> tuple[Any, ...]:
        """Convert to a row for the ``notes`` table."""
        return (
            self.id,
            json.dumps(self.payload.to_dict()),
            to_epoch_ms(self.created_at),
            to_epoch_ms(self.updated_at),
            self.sync_state.value,
            self.server_version,
            int(self.deleted),
        )

    @classmethod
    def from_row(cls, row: tuple[Any, ...] | Any) -> Record:
        """Create from a ``notes`` table row (see ``to_row`` for column order)."""
        record_id, payload, created_at, updated_at, sync_state, server_version, deleted = row
        return cls(
            id=record_id,
            payload=NotePayload.from_dict(json.loads(payload) if payload else {}),
            created_at=from_epoch_ms(created_at),
            updated_at=from_epoch_ms(updated_at),
            sync_state=SyncState(sync_state),
            server_version=server_version,
            deleted=bool(deleted),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "payload": self.payload.to_dict(),
            "created_at": to_epoch_ms(self.created_at),
            "updated_at": to_epoch_ms(self.updated_at),
            "sync_state": self.sync_state.value,
            "server_version": self.server_version,
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            payload=NotePayload.from_dict(data.get("payload", {})),
            created_at=from_epoch_ms(data["created_at"]),
            updated_at=from_epoch_ms(data["updated_at"]),
            sync_state=SyncState(data.get("sync_state", SyncState.SYNCED.value)),
            server_version=data.get("server_version", 0),
            deleted=data.get("deleted", False),
        )
