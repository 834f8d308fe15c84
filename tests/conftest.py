"""
Shared test configuration and fixtures.

Provides stores, a simulated remote and a connectivity signal wired the way
the engine wires them. Every fixture uses in-memory state so tests never
touch the network or the user's files.
"""

import asyncio
import logging
from dataclasses import replace

import pytest

from offline_notes_sync.records import NotePayload, Record
from offline_notes_sync.remote import SimulatedRemoteGateway
from offline_notes_sync.store import InMemoryRecordStore, SQLiteRecordStore, SQLiteStoreConfig
from offline_notes_sync.sync import BackoffPolicy, ConnectivityMonitor, Reconciler

logger = logging.getLogger(__name__)


def make_record(title: str = "Note", content: str = "", **overrides) -> Record:
    """Build a pending-create record, with optional field overrides."""
    record = Record.create(NotePayload(title=title, content=content))
    if overrides:
        record = replace(record, **overrides)
    return record


async def settle(rounds: int = 5) -> None:
    """Let background tasks run without advancing any timers."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
async def store():
    """Initialized in-memory store."""
    store = InMemoryRecordStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sqlite_store():
    """Initialized SQLite store on an in-memory database."""
    store = await SQLiteRecordStore.create(SQLiteStoreConfig(db_path=":memory:"))
    yield store
    await store.close()


@pytest.fixture
def remote():
    """Simulated remote with no latency and no random failures."""
    return SimulatedRemoteGateway(seed=1)


@pytest.fixture
def connectivity():
    """Connectivity signal, online."""
    return ConnectivityMonitor(online=True)


@pytest.fixture
def reconciler(store, remote, connectivity):
    return Reconciler(store, remote, connectivity)


@pytest.fixture
def fast_policy():
    """Backoff policy with delays short enough for tests."""
    return BackoffPolicy(max_attempts=3, base_delay=0.01, multiplier=2.0)
