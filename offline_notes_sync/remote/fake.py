"""
Simulated remote authority.

Behaves like a real notes service from the engine's point of view:
network latency, occasional failures and server-side timestamps and
versions. Failures can also be injected deterministically for tests.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from ..exceptions import NetworkFailureError, NotFoundRemotelyError
from ..records import NotePayload, Record, SyncState, utc_now
from ..records.types import from_epoch_ms, to_epoch_ms
from .base import RemoteGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RemoteNote:
    """Server-side representation of a note."""

    id: str
    payload: NotePayload
    created_at_ms: int
    updated_at_ms: int
    version: int

    def to_record(self) -> Record:
        return Record(
            id=self.id,
            payload=self.payload,
            created_at=from_epoch_ms(self.created_at_ms),
            updated_at=from_epoch_ms(self.updated_at_ms),
            sync_state=SyncState.SYNCED,
            server_version=self.version,
        )

    @classmethod
    def from_record(cls, record: Record) -> RemoteNote:
        """Server copy of a record, keeping its version."""
        return cls(
            id=record.id,
            payload=record.payload,
            created_at_ms=to_epoch_ms(record.created_at),
            updated_at_ms=to_epoch_ms(record.updated_at),
            version=record.server_version,
        )


@dataclass
class CallStats:
    """Counts of remote calls, by operation."""

    fetch_all: int = 0
    create: int = 0
    update: int = 0
    delete: int = 0
    failures: int = 0
    by_record: dict[str, list[str]] = field(default_factory=dict)


class SimulatedRemoteGateway(RemoteGateway):
    """In-memory remote authority with latency and failure simulation.

    Example:
        >>> remote = SimulatedRemoteGateway(failure_rate=0.1, max_delay=0.8)
        >>> remote.seed_data()
        >>> notes = await remote.fetch_all()
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_delay: float = 0.0,
        max_delay: float = 0.0,
        seed: int | None = None,
    ):
        """Initialize the simulator.

        Args:
            failure_rate: Probability (0.0 to 1.0) that any call fails
            min_delay: Minimum simulated latency in seconds
            max_delay: Maximum simulated latency in seconds
            seed: Seed for the failure and latency generator
        """
        self.failure_rate = failure_rate
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.reachable = True
        self.fail_ids: set[str] = set()
        self.stats = CallStats()

        self._notes: dict[str, RemoteNote] = {}
        self._random = random.Random(seed)
        self._forced_failures = 0

    # =========================================================================
    # Failure control
    # =========================================================================

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` calls fail with a network error."""
        self._forced_failures += count

    def reset(self) -> None:
        """Drop all server state and failure settings."""
        self._notes.clear()
        self.fail_ids.clear()
        self._forced_failures = 0
        self.reachable = True
        self.stats = CallStats()

    # =========================================================================
    # Server state
    # =========================================================================

    def seed_data(self) -> bool:
        """Seed the server with sample notes.

        Returns:
            True if notes were added (the server was empty)
        """
        if self._notes:
            return False
        now_ms = to_epoch_ms(utc_now())
        samples = [
            RemoteNote(
                id="sample-1",
                payload=NotePayload(
                    title="Welcome to Offline Notes",
                    content="Notes are stored locally first. Try going offline and creating notes!",
                ),
                created_at_ms=now_ms - 86_400_000,
                updated_at_ms=now_ms - 86_400_000,
                version=1,
            ),
            RemoteNote(
                id="sample-2",
                payload=NotePayload(
                    title="How Sync Works",
                    content=(
                        "Changes are saved on this device, pushed when the network "
                        "is available, and the server copy is pulled back."
                    ),
                ),
                created_at_ms=now_ms - 43_200_000,
                updated_at_ms=now_ms - 43_200_000,
                version=1,
            ),
        ]
        for note in samples:
            self._notes[note.id] = note
        return True

    def get(self, record_id: str) -> Record | None:
        """Server copy of a record, without simulating the network."""
        note = self._notes.get(record_id)
        return note.to_record() if note else None

    def put(self, record: Record) -> Record:
        """Write a record directly on the server, as another client would."""
        existing = self._notes.get(record.id)
        note = RemoteNote(
            id=record.id,
            payload=record.payload,
            created_at_ms=to_epoch_ms(record.created_at),
            updated_at_ms=to_epoch_ms(record.updated_at),
            version=existing.version + 1 if existing else 1,
        )
        self._notes[record.id] = note
        return note.to_record()

    def remove(self, record_id: str) -> None:
        """Delete a record directly on the server, as another client would."""
        self._notes.pop(record_id, None)

    def __len__(self) -> int:
        return len(self._notes)

    # =========================================================================
    # RemoteGateway
    # =========================================================================

    async def fetch_all(self) -> list[Record]:
        self.stats.fetch_all += 1
        return await self._simulate(
            None, lambda: [n.to_record() for n in self._notes.values()], mutates=False
        )

    async def create(self, record: Record) -> Record:
        self.stats.create += 1
        self._note_call(record.id, "create")

        def op() -> Record:
            note = RemoteNote(
                id=record.id,
                payload=record.payload,
                created_at_ms=to_epoch_ms(record.created_at),
                updated_at_ms=self._server_time_ms(record),
                version=1,
            )
            self._notes[record.id] = note
            return note.to_record()

        return await self._simulate(record.id, op)

    async def update(self, record: Record) -> Record:
        self.stats.update += 1
        self._note_call(record.id, "update")

        def op() -> Record:
            existing = self._notes.get(record.id)
            if existing is None:
                raise NotFoundRemotelyError(record.id)
            existing.payload = record.payload
            existing.updated_at_ms = self._server_time_ms(record)
            existing.version += 1
            return existing.to_record()

        return await self._simulate(record.id, op)

    async def delete(self, record_id: str) -> None:
        self.stats.delete += 1
        self._note_call(record_id, "delete")

        def op() -> None:
            if self._notes.pop(record_id, None) is None:
                raise NotFoundRemotelyError(record_id)

        await self._simulate(record_id, op)

    # =========================================================================
    # Network simulation
    # =========================================================================

    def _note_call(self, record_id: str, operation: str) -> None:
        self.stats.by_record.setdefault(record_id, []).append(operation)

    def _server_time_ms(self, record: Record) -> int:
        # Server clock, never behind the client's own edit
        return max(to_epoch_ms(utc_now()), to_epoch_ms(record.updated_at))

    def _check_failure(self, record_id: str | None) -> None:
        if not self.reachable:
            raise NetworkFailureError("Remote unreachable", record_id=record_id)
        if self._forced_failures > 0:
            self._forced_failures -= 1
            raise NetworkFailureError("Simulated network failure", record_id=record_id)
        if record_id is not None and record_id in self.fail_ids:
            raise NetworkFailureError("Simulated network failure", record_id=record_id)
        if self.failure_rate > 0 and self._random.random() < self.failure_rate:
            raise NetworkFailureError("Simulated network failure", record_id=record_id)

    async def _simulate(
        self, record_id: str | None, op: Callable[[], T], mutates: bool = True
    ) -> T:
        """Run ``op`` after simulated latency, unless the call is made to fail."""
        if self.max_delay > 0:
            await asyncio.sleep(self._random.uniform(self.min_delay, self.max_delay))
        try:
            self._check_failure(record_id)
            result = op()
        except Exception as e:
            self.stats.failures += 1
            logger.debug(f"Simulated remote call failed for {record_id or '*'}: {e}")
            raise
        if mutates:
            await self._after_change()
        return result

    async def _after_change(self) -> None:
        """Hook run after every successful call that changed server state."""
        return None
