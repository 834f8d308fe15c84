"""Drive the sync engine through an offline/online session against a simulated remote.

Walks the create -> sync -> failed delete -> retry lifecycle and prints the
note states and sync status after each step.

Usage:
    uv run python scripts/simulate_offline_sync.py [db_path]

If no db_path is given, an in-memory database is used.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from offline_notes_sync import (
    BackoffPolicy,
    ConnectivityMonitor,
    NotesSyncEngine,
    SimulatedRemoteGateway,
    SQLiteRecordStore,
    SQLiteStoreConfig,
    SyncState,
    SyncStatus,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(name)s  %(message)s")
logger = logging.getLogger(__name__)


def _show(engine: NotesSyncEngine, label: str) -> None:
    print(f"\n--- {label} ---")
    print(f"  online  : {engine.is_online.value}")
    print(f"  status  : {engine.sync_status.value.value}")
    print(f"  pending : {engine.pending_count.value}")
    if engine.last_error.value:
        print(f"  error   : {engine.last_error.value}")
    for note in engine.store.observe_all(excluding_pending_delete=False).value:
        print(f"  {note.sync_state.value:15s} v{note.server_version}  {note.title}")


async def run(db_path: str) -> None:
    remote = SimulatedRemoteGateway(min_delay=0.05, max_delay=0.2, seed=7)
    remote.seed_data()

    engine = NotesSyncEngine(
        store=SQLiteRecordStore(SQLiteStoreConfig(db_path=db_path)),
        remote=remote,
        connectivity=ConnectivityMonitor(online=False),
        policy=BackoffPolicy(max_attempts=3, base_delay=0.1),
    )

    results: dict[str, str] = {}

    async with engine:
        # ---- 1. Offline create ----
        note = await engine.create_record("A", "written offline")
        _show(engine, "Created offline")
        stored = await engine.repository.get_note(note.id)
        results["offline_create"] = (
            "PASS" if stored and stored.sync_state is SyncState.PENDING_CREATE else "FAIL"
        )

        # ---- 2. Reconnect: queued pass runs ----
        engine.connectivity.set_online(True)
        await asyncio.sleep(0)
        await engine.wait_idle()
        _show(engine, "Back online")
        stored = await engine.repository.get_note(note.id)
        results["push_on_reconnect"] = (
            "PASS" if stored and stored.is_synced and stored.server_version == 1 else "FAIL"
        )
        results["pull_seeded"] = "PASS" if len(engine.notes.value) == 3 else "FAIL"

        # ---- 3. Delete fails remotely ----
        remote.fail_ids.add(note.id)
        await engine.delete_record(note.id)
        await engine.wait_idle()
        _show(engine, "Delete rejected")
        stored = await engine.repository.get_note(note.id)
        results["failed_delete_kept"] = (
            "PASS"
            if stored and stored.sync_state is SyncState.SYNC_FAILED
            and engine.last_error.value is not None
            else "FAIL"
        )

        # ---- 4. Retry succeeds ----
        remote.fail_ids.clear()
        await engine.retry()
        await engine.wait_idle()
        _show(engine, "Retried")
        results["retry_removes"] = (
            "PASS" if await engine.repository.get_note(note.id) is None else "FAIL"
        )
        results["idle"] = "PASS" if engine.sync_status.value is SyncStatus.IDLE else "FAIL"

    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    all_pass = True
    for step, status in results.items():
        if status != "PASS":
            all_pass = False
        print(f"  {step:25s}: {status}")
    print("=" * 70)
    print(f"  remote calls: {remote.stats}")

    if not all_pass:
        print("\nSome checks failed. See above for details.")
        sys.exit(1)


def main() -> None:
    db_path = ":memory:"
    if len(sys.argv) > 1:
        db_path = str(Path(sys.argv[1]).expanduser().resolve())

    asyncio.run(run(db_path))


if __name__ == "__main__":
    main()
