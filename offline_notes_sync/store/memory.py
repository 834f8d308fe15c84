"""
In-memory record store.

Keeps records in a dict. Used by tests and by engines that do not need
durability across restarts.
"""

from __future__ import annotations

from dataclasses import replace

from ..records import Record, SyncState
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    """Record store backed by a dict keyed by record id."""

    def __init__(self, records: list[Record] | None = None):
        super().__init__()
        self._records: dict[str, Record] = {r.id: r for r in records or []}

    async def _open(self) -> None:
        return None

    async def _fetch(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    async def _fetch_all(self) -> list[Record]:
        return sorted(self._records.values(), key=lambda r: r.updated_at, reverse=True)

    async def _fetch_pending(self) -> list[Record]:
        pending = [r for r in self._records.values() if r.sync_state.is_pending]
        return sorted(pending, key=lambda r: r.updated_at)

    async def _upsert(self, records: list[Record]) -> None:
        for record in records:
            self._records[record.id] = record

    async def _remove(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    async def _set_sync_state(self, record_id: str, state: SyncState) -> bool:
        record = self._records.get(record_id)
        if record is None:
            return False
        self._records[record_id] = replace(record, sync_state=state)
        return True

    async def _remove_all(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count
