"""
Tests for the sync coordinator and status derivation.
"""

import asyncio

import pytest
from conftest import make_record, settle

from offline_notes_sync.exceptions import NoConnectionError
from offline_notes_sync.records import SyncState
from offline_notes_sync.sync import SyncCoordinator, SyncStatus, derive_status
from offline_notes_sync.sync.coordinator import RETRY_MESSAGE


@pytest.fixture
async def coordinator(store, reconciler, connectivity, fast_policy):
    coordinator = SyncCoordinator(store, reconciler, connectivity, policy=fast_policy)
    await coordinator.start()
    yield coordinator
    await coordinator.close()


class TestDeriveStatus:
    """Tests for status precedence."""

    def test_offline_wins(self):
        pending = [make_record()]
        assert derive_status(False, True, pending, True) is SyncStatus.OFFLINE

    def test_syncing_beats_pending(self):
        assert derive_status(True, True, [make_record()], False) is SyncStatus.SYNCING

    def test_pending_beats_failed(self):
        assert derive_status(True, False, [make_record()], True) is SyncStatus.PENDING

    def test_failed_records_count_as_pending(self):
        failed = [make_record().failed()]
        assert derive_status(True, False, failed, False) is SyncStatus.PENDING
        assert derive_status(True, False, failed, True) is SyncStatus.PENDING

    def test_last_pass_failed(self):
        assert derive_status(True, False, [], True) is SyncStatus.FAILED

    def test_idle(self):
        assert derive_status(True, False, [], False) is SyncStatus.IDLE


class TestStatus:
    """Tests for the published status."""

    @pytest.mark.asyncio
    async def test_starts_idle_when_nothing_pending(self, coordinator):
        assert coordinator.status.value is SyncStatus.IDLE

    @pytest.mark.asyncio
    async def test_status_walks_pending_syncing_idle(self, store, coordinator):
        seen = []
        coordinator.status.add_listener(seen.append)

        await store.put(make_record())
        coordinator.schedule_sync()
        await coordinator.wait_idle()

        assert seen == [SyncStatus.PENDING, SyncStatus.SYNCING, SyncStatus.IDLE]

    @pytest.mark.asyncio
    async def test_offline_status(self, store, connectivity, coordinator):
        connectivity.set_online(False)
        assert coordinator.status.value is SyncStatus.OFFLINE
        await store.put(make_record())
        assert coordinator.status.value is SyncStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_partial_failure_stays_pending_with_message(self, store, remote, coordinator):
        a, b = make_record("A"), make_record("B")
        await store.put_all([a, b])
        remote.fail_ids.add(a.id)

        coordinator.schedule_sync()
        await coordinator.wait_idle()

        assert coordinator.status.value is SyncStatus.PENDING
        assert coordinator.last_error.value == "1 note failed to sync. Tap to retry."
        assert coordinator.last_result.synced_count == 1

    @pytest.mark.asyncio
    async def test_failed_pull_with_nothing_pending_is_failed(self, remote, coordinator):
        remote.reachable = False
        result = await coordinator.sync_now()

        assert result.pull_failed
        assert coordinator.status.value is SyncStatus.FAILED
        assert coordinator.last_error.value == RETRY_MESSAGE

    @pytest.mark.asyncio
    async def test_exhausted_pass_sets_retry_message(self, store, coordinator):
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise RuntimeError("store exploded")

        await store.put(make_record())
        coordinator.reconciler.reconcile = broken
        coordinator.schedule_sync()
        await asyncio.wait_for(coordinator.wait_idle(), timeout=2)

        assert calls == 3
        assert coordinator.last_error.value == RETRY_MESSAGE
        # Unpushed records still outrank the failure
        assert coordinator.status.value is SyncStatus.PENDING


class TestTriggers:
    """Tests for when passes run."""

    @pytest.mark.asyncio
    async def test_reconnect_with_pending_work_syncs(self, store, connectivity, coordinator):
        connectivity.set_online(False)
        record = make_record()
        await store.put(record)

        connectivity.set_online(True)
        await settle()
        await coordinator.wait_idle()

        assert (await store.get_by_id(record.id)).is_synced
        assert coordinator.status.value is SyncStatus.IDLE

    @pytest.mark.asyncio
    async def test_start_with_pending_syncs(self, store, reconciler, connectivity, fast_policy):
        record = make_record()
        await store.put(record)

        coordinator = SyncCoordinator(store, reconciler, connectivity, policy=fast_policy)
        await coordinator.start()
        await coordinator.wait_idle()

        assert (await store.get_by_id(record.id)).is_synced
        await coordinator.close()

    @pytest.mark.asyncio
    async def test_auto_sync_interval(self, store, remote, reconciler, connectivity):
        remote.seed_data()
        coordinator = SyncCoordinator(store, reconciler, connectivity, auto_sync_interval=0.01)
        await coordinator.start()

        await asyncio.sleep(0.05)
        await coordinator.wait_idle()
        await coordinator.close()

        assert remote.stats.fetch_all >= 1
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_sync_now_returns_result(self, store, coordinator):
        await store.put(make_record())
        result = await coordinator.sync_now()
        assert result.synced_count == 1
        assert coordinator.last_sync is not None

    @pytest.mark.asyncio
    async def test_sync_now_offline_raises(self, connectivity, coordinator):
        connectivity.set_online(False)
        with pytest.raises(NoConnectionError):
            await coordinator.sync_now()


class TestSyncOnce:
    """Tests for running a pass directly."""

    @pytest.mark.asyncio
    async def test_sync_once_runs_without_scheduler(self, store, coordinator):
        record = make_record()
        await store.put(record)

        result = await coordinator.sync_once()

        assert result.synced_count == 1
        assert (await store.get_by_id(record.id)).is_synced
        assert coordinator.scheduler.completed_passes == 0
        assert coordinator.last_result is result
        assert coordinator.status.value is SyncStatus.IDLE

    @pytest.mark.asyncio
    async def test_sync_once_offline_raises(self, store, connectivity, coordinator):
        connectivity.set_online(False)
        await store.put(make_record())

        with pytest.raises(NoConnectionError):
            await coordinator.sync_once()
        assert coordinator.status.value is SyncStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_sync_once_never_overlaps_scheduled_pass(self, store, coordinator):
        reconcile = coordinator.reconciler.reconcile
        running = 0
        overlapped = False

        async def tracked():
            nonlocal running, overlapped
            running += 1
            overlapped = overlapped or running > 1
            try:
                await asyncio.sleep(0.01)
                return await reconcile()
            finally:
                running -= 1

        coordinator.reconciler.reconcile = tracked
        await store.put(make_record())
        coordinator.schedule_sync()
        await settle()

        await coordinator.sync_once()
        await coordinator.wait_idle()

        assert not overlapped
        assert coordinator.scheduler.completed_passes == 1


class TestRetryFailed:
    """Tests for retrying failed records."""

    @pytest.mark.asyncio
    async def test_retry_failed_moves_records_back_and_syncs(self, store, remote, coordinator):
        record = make_record()
        await store.put(record)
        remote.fail_ids.add(record.id)
        coordinator.schedule_sync()
        await coordinator.wait_idle()
        assert (await store.get_by_id(record.id)).sync_state is SyncState.SYNC_FAILED

        remote.fail_ids.clear()
        assert await coordinator.retry_failed() == 1
        await coordinator.wait_idle()

        assert (await store.get_by_id(record.id)).is_synced
        assert coordinator.status.value is SyncStatus.IDLE
        assert coordinator.last_error.value is None

    @pytest.mark.asyncio
    async def test_retry_with_nothing_failed(self, coordinator):
        assert await coordinator.retry_failed() == 0
        await coordinator.wait_idle()
        assert coordinator.status.value is SyncStatus.IDLE
