"""
Abstract local record store.

Defines the contract every local store implements. The store is the single
source of truth for records: writers and the reconciler only request
mutations through it, and every committed mutation is pushed to the live
queries before the next operation can start.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..live import LiveValue
from ..records import Record, SyncState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Transform = Callable[[Record | None], Record | None]


class RecordStore(ABC):
    """Durable, queryable holder of records.

    Public operations are serialized by a single lock. Backends implement
    the private primitives only; they never publish or lock themselves.

    Live queries:
        observe_all: records ordered by updated_at, newest first
        observe_by_id: one record, or None once it is removed
        observe_pending / observe_pending_count: records not yet synced
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._initialized = False
        self._all: LiveValue[list[Record]] = LiveValue([])
        self._visible: LiveValue[list[Record]] = LiveValue([])
        self._pending: LiveValue[list[Record]] = LiveValue([])
        self._pending_count: LiveValue[int] = self._pending.map(len)
        self._by_id: dict[str, LiveValue[Record | None]] = {}

    async def initialize(self) -> None:
        """Open the backend and publish its current contents."""
        if self._initialized:
            return
        async with self._lock:
            await self._open()
            await self._publish()
        self._initialized = True

    async def close(self) -> None:
        """Release backend resources."""
        await self._close()
        self._initialized = False

    async def __aenter__(self) -> RecordStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # Writes
    # =========================================================================

    async def put(self, record: Record) -> None:
        """Insert or replace a record by id."""
        await self._mutate(lambda: self._upsert([record]))

    async def put_all(self, records: list[Record]) -> None:
        """Insert or replace several records in one commit."""
        if records:
            await self._mutate(lambda: self._upsert(records))

    async def delete_by_id(self, record_id: str) -> bool:
        """Hard-remove a record. Idempotent.

        Returns:
            True if a record was removed
        """
        return await self._mutate(lambda: self._remove(record_id))

    async def update_sync_state(self, record_id: str, state: SyncState) -> bool:
        """Change only the sync state of a record.

        Returns:
            True if the record exists
        """
        return await self._mutate(lambda: self._set_sync_state(record_id, state))

    async def apply(self, record_id: str, transform: Transform) -> Record | None:
        """Atomic read-modify-write of one record.

        ``transform`` receives the current record (or None) and returns the
        record to store, the same object to leave it untouched, or None to
        remove it.

        Returns:
            The record stored after the transform, or None if absent
        """

        async def run() -> Record | None:
            current = await self._fetch(record_id)
            updated = transform(current)
            if updated is current:
                return current
            if updated is None:
                await self._remove(record_id)
                return None
            if updated.id != record_id:
                raise ValueError(f"Transform changed record id {record_id!r} to {updated.id!r}")
            await self._upsert([updated])
            return updated

        return await self._mutate(run)

    async def clear_all(self) -> int:
        """Remove every record.

        Returns:
            Number of records removed
        """
        return await self._mutate(self._remove_all)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(self, record_id: str) -> Record | None:
        async with self._lock:
            return await self._fetch(record_id)

    async def pending_records(self) -> list[Record]:
        """Records whose sync_state is anything but SYNCED, oldest first."""
        async with self._lock:
            return await self._fetch_pending()

    async def count(self) -> int:
        async with self._lock:
            return len(await self._fetch_all())

    def observe_all(self, excluding_pending_delete: bool = True) -> LiveValue[list[Record]]:
        """Live list ordered by updated_at, newest first."""
        return self._visible if excluding_pending_delete else self._all

    def observe_by_id(self, record_id: str) -> LiveValue[Record | None]:
        """Live view of one record.

        The view stops tracking once the record is removed; observing the
        same id again afterwards starts a fresh view.
        """
        live = self._by_id.get(record_id)
        if live is not None:
            return live

        live = LiveValue(_find(self._all.value, record_id))

        def track(records: list[Record]) -> None:
            current = _find(records, record_id)
            removed = current is None and live.value is not None
            live.publish(current)
            if removed:
                stop()
                self._by_id.pop(record_id, None)

        stop = self._all.add_listener(track)
        self._by_id[record_id] = live
        return live

    def observe_pending(self) -> LiveValue[list[Record]]:
        return self._pending

    def observe_pending_count(self) -> LiveValue[int]:
        return self._pending_count

    # =========================================================================
    # Internals
    # =========================================================================

    async def _mutate(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            try:
                result = await operation()
                await self._commit()
            except Exception:
                await self._rollback()
                raise
            await self._publish()
            return result

    async def _publish(self) -> None:
        records = await self._fetch_all()
        self._all.publish(records)
        self._visible.publish(
            [r for r in records if r.sync_state is not SyncState.PENDING_DELETE]
        )
        self._pending.publish(
            sorted((r for r in records if r.sync_state.is_pending), key=lambda r: r.updated_at)
        )

    # =========================================================================
    # Backend primitives
    # =========================================================================

    @abstractmethod
    async def _open(self) -> None: ...

    async def _close(self) -> None:
        return None

    async def _commit(self) -> None:
        return None

    async def _rollback(self) -> None:
        return None

    @abstractmethod
    async def _fetch(self, record_id: str) -> Record | None: ...

    @abstractmethod
    async def _fetch_all(self) -> list[Record]:
        """All records ordered by updated_at, newest first."""

    @abstractmethod
    async def _fetch_pending(self) -> list[Record]:
        """Unsynced records ordered by updated_at, oldest first."""

    @abstractmethod
    async def _upsert(self, records: list[Record]) -> None: ...

    @abstractmethod
    async def _remove(self, record_id: str) -> bool: ...

    @abstractmethod
    async def _set_sync_state(self, record_id: str, state: SyncState) -> bool: ...

    @abstractmethod
    async def _remove_all(self) -> int: ...


def _find(records: list[Record], record_id: str) -> Record | None:
    for record in records:
        if record.id == record_id:
            return record
    return None
