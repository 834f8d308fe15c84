"""
Tests for push/pull reconciliation.
"""

import logging
from dataclasses import replace
from datetime import timedelta

import pytest
from conftest import make_record

from offline_notes_sync.exceptions import LocalStoreError, NetworkFailureError, NoConnectionError
from offline_notes_sync.records import NotePayload, SyncState
from offline_notes_sync.remote import SimulatedRemoteGateway
from offline_notes_sync.sync import Reconciler


async def create_synced(store, remote, title="A"):
    """A record the remote has accepted, synced locally."""
    record = make_record(title)
    echo = await remote.create(record)
    synced = record.accepted(echo)
    await store.put(synced)
    return synced


class TestPreconditions:
    """Tests for the connectivity precondition."""

    @pytest.mark.asyncio
    async def test_offline_is_a_no_op(self, store, remote, connectivity, reconciler):
        record = make_record()
        await store.put(record)
        connectivity.set_online(False)

        with pytest.raises(NoConnectionError):
            await reconciler.reconcile()

        assert await store.get_by_id(record.id) == record
        assert remote.stats.create == 0
        assert remote.stats.fetch_all == 0


class TestPush:
    """Tests for the push phase."""

    @pytest.mark.asyncio
    async def test_pass_summary_logged(self, store, remote, reconciler, caplog):
        a, b = make_record("A"), make_record("B")
        await store.put_all([a, b])
        remote.fail_ids.add(a.id)

        with caplog.at_level(logging.INFO, logger="offline_notes_sync.sync.reconciler"):
            await reconciler.reconcile()

        assert "Reconciliation finished: synced=1 failed=1 pulled=" in caplog.text

    @pytest.mark.asyncio
    async def test_offline_create_then_sync(self, store, remote, reconciler):
        record = make_record("A")
        await store.put(record)
        assert record.sync_state is SyncState.PENDING_CREATE
        assert record.server_version == 0

        result = await reconciler.reconcile()

        assert result.synced_count == 1
        assert result.success
        stored = await store.get_by_id(record.id)
        assert stored.sync_state is SyncState.SYNCED
        assert stored.server_version >= 1

    @pytest.mark.asyncio
    async def test_update_pushes_edit(self, store, remote, reconciler):
        synced = await create_synced(store, remote)
        await store.put(synced.edited(NotePayload(title="B")))

        result = await reconciler.reconcile()

        assert result.synced_count == 1
        assert remote.get(synced.id).title == "B"
        assert (await store.get_by_id(synced.id)).server_version == 2

    @pytest.mark.asyncio
    async def test_delete_removes_locally_after_remote_confirms(self, store, remote, reconciler):
        synced = await create_synced(store, remote)
        await store.put(synced.marked_for_deletion())

        result = await reconciler.reconcile()

        assert result.synced_count == 1
        assert await store.get_by_id(synced.id) is None
        assert remote.get(synced.id) is None

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_content(self, store, remote, reconciler):
        synced = await create_synced(store, remote, title="Keep me")
        await store.put(synced.marked_for_deletion())
        remote.fail_ids.add(synced.id)

        result = await reconciler.reconcile()

        assert result.failed_count == 1
        stored = await store.get_by_id(synced.id)
        assert stored.sync_state is SyncState.SYNC_FAILED
        assert stored.title == "Keep me"

    @pytest.mark.asyncio
    async def test_idempotent_second_pass(self, store, remote, reconciler):
        await store.put_all([make_record("A"), make_record("B")])

        first = await reconciler.reconcile()
        second = await reconciler.reconcile()

        assert first.synced_count == 2
        assert second.synced_count == 0
        assert all(r.is_synced for r in store.observe_all().value)
        assert remote.stats.create == 2

    @pytest.mark.asyncio
    async def test_partial_failure_isolation(self, store, remote, reconciler):
        a, b = make_record("A"), make_record("B")
        await store.put_all([a, b])
        remote.fail_ids.add(a.id)

        result = await reconciler.reconcile()

        assert result.synced_count == 1
        assert result.failed_count == 1
        assert not result.success
        assert (await store.get_by_id(a.id)).sync_state is SyncState.SYNC_FAILED
        assert (await store.get_by_id(b.id)).sync_state is SyncState.SYNCED
        assert any(a.id in error for error in result.errors)

    @pytest.mark.asyncio
    async def test_failed_records_retried_every_pass(self, store, remote, reconciler):
        record = make_record("A")
        await store.put(record)
        remote.fail_ids.add(record.id)
        await reconciler.reconcile()

        remote.fail_ids.clear()
        result = await reconciler.reconcile()

        assert result.synced_count == 1
        assert (await store.get_by_id(record.id)).is_synced

    @pytest.mark.asyncio
    async def test_failed_create_retried_as_create(self, store, remote, reconciler):
        record = make_record("A")
        await store.put(record)
        remote.fail_ids.add(record.id)
        await reconciler.reconcile()

        remote.fail_ids.clear()
        await reconciler.reconcile()

        assert remote.stats.by_record[record.id] == ["create", "create"]

    @pytest.mark.asyncio
    async def test_failed_update_retried_as_update(self, store, remote, reconciler):
        synced = await create_synced(store, remote)
        await store.put(synced.edited(NotePayload(title="B")))
        remote.fail_ids.add(synced.id)
        await reconciler.reconcile()

        remote.fail_ids.clear()
        await reconciler.reconcile()

        assert remote.stats.by_record[synced.id] == ["create", "update", "update"]
        assert remote.get(synced.id).title == "B"

    @pytest.mark.asyncio
    async def test_update_of_remotely_deleted_record_fails(self, store, remote, reconciler):
        synced = await create_synced(store, remote)
        remote.remove(synced.id)
        await store.put(synced.edited(NotePayload(title="B")))

        result = await reconciler.reconcile()

        assert result.failed_count == 1
        assert (await store.get_by_id(synced.id)).sync_state is SyncState.SYNC_FAILED


class TestPull:
    """Tests for the pull phase."""

    @pytest.mark.asyncio
    async def test_pull_inserts_remote_records(self, store, remote, reconciler):
        remote.seed_data()

        result = await reconciler.reconcile()

        assert result.pulled_count == 2
        assert {r.id for r in store.observe_all().value} == {"sample-1", "sample-2"}
        assert all(r.is_synced for r in store.observe_all().value)

    @pytest.mark.asyncio
    async def test_pull_overwrites_synced_copy(self, store, remote, reconciler):
        synced = await create_synced(store, remote, title="Mine")
        remote.put(replace(synced, payload=NotePayload(title="Theirs")))

        await reconciler.reconcile()

        stored = await store.get_by_id(synced.id)
        assert stored.title == "Theirs"
        assert stored.server_version == 2

    @pytest.mark.asyncio
    async def test_pull_skips_records_pending_before_push(self, store, remote, reconciler):
        synced = await create_synced(store, remote, title="Mine")
        remote.put(replace(synced, payload=NotePayload(title="Theirs")))
        await store.put(synced.edited(NotePayload(title="Local edit")))
        remote.fail_ids.add(synced.id)

        await reconciler.reconcile()

        stored = await store.get_by_id(synced.id)
        assert stored.title == "Local edit"
        assert stored.sync_state is SyncState.SYNC_FAILED

    @pytest.mark.asyncio
    async def test_pull_does_not_clobber_edit_made_during_pass(self, store, connectivity):
        remote = SimulatedRemoteGateway()
        record = make_record("Original")
        echo = await remote.create(record)
        await store.put(record.accepted(echo))

        class EditDuringFetch(SimulatedRemoteGateway):
            async def fetch_all(self):
                records = await remote.fetch_all()
                # A local edit lands after the push phase snapshot
                await store.apply(record.id, lambda r: r.edited(NotePayload(title="Mid-pass")))
                return records

        reconciler = Reconciler(store, EditDuringFetch(), connectivity)
        await reconciler.reconcile()

        stored = await store.get_by_id(record.id)
        assert stored.title == "Mid-pass"
        assert stored.sync_state is SyncState.PENDING_UPDATE

    @pytest.mark.asyncio
    async def test_absent_remote_records_are_kept(self, store, remote, reconciler):
        synced = await create_synced(store, remote)
        remote.remove(synced.id)

        await reconciler.reconcile()

        assert await store.get_by_id(synced.id) is not None

    @pytest.mark.asyncio
    async def test_pull_failure_reported(self, store, connectivity):
        record = make_record()
        await store.put(record)

        class FailingFetch(SimulatedRemoteGateway):
            async def fetch_all(self):
                raise NetworkFailureError("Remote unreachable")

        result = await Reconciler(store, FailingFetch(), connectivity).reconcile()

        assert result.synced_count == 1
        assert result.pull_failed
        assert not result.success
        assert (await store.get_by_id(record.id)).is_synced

    @pytest.mark.asyncio
    async def test_pull_only(self, store, remote, reconciler):
        remote.seed_data()
        pending = make_record("Local")
        await store.put(pending)

        result = await reconciler.pull()

        assert result.pulled_count == 2
        assert remote.stats.create == 0
        assert (await store.get_by_id(pending.id)).sync_state is SyncState.PENDING_CREATE


class TestRaces:
    """Tests for local writes racing an in-flight push."""

    @pytest.mark.asyncio
    async def test_edit_during_create_stays_pending(self, store, connectivity):
        remote = SimulatedRemoteGateway()
        record = make_record("v1")
        await store.put(record)

        class EditDuringCreate(SimulatedRemoteGateway):
            async def create(self, r):
                echo = await remote.create(r)
                await store.apply(r.id, lambda cur: cur.edited(NotePayload(title="v2")))
                return echo

            async def fetch_all(self):
                return await remote.fetch_all()

        await Reconciler(store, EditDuringCreate(), connectivity).reconcile()

        stored = await store.get_by_id(record.id)
        assert stored.title == "v2"
        assert stored.server_version == 1
        assert stored.sync_state is SyncState.PENDING_UPDATE

    @pytest.mark.asyncio
    async def test_delete_during_create_becomes_pending_delete(self, store, connectivity):
        remote = SimulatedRemoteGateway()
        record = make_record("v1")
        await store.put(record)

        class DeleteDuringCreate(SimulatedRemoteGateway):
            async def create(self, r):
                echo = await remote.create(r)
                await store.delete_by_id(r.id)
                return echo

            async def fetch_all(self):
                return await remote.fetch_all()

        await Reconciler(store, DeleteDuringCreate(), connectivity).reconcile()

        stored = await store.get_by_id(record.id)
        assert stored.sync_state is SyncState.PENDING_DELETE
        assert stored.server_version == 1


class TestLocalStoreFailure:
    """Tests for local store faults aborting the pass."""

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, store, remote, reconciler):
        await store.put(make_record())

        async def broken():
            raise LocalStoreError("pending_records")

        store.pending_records = broken

        with pytest.raises(LocalStoreError):
            await reconciler.reconcile()
        assert remote.stats.fetch_all == 0

    @pytest.mark.asyncio
    async def test_store_failure_mid_push_keeps_committed_work(self, store, remote, reconciler):
        first = make_record("A")
        second = make_record("B", updated_at=first.updated_at + timedelta(seconds=1))
        third = make_record("C", updated_at=first.updated_at + timedelta(seconds=2))
        await store.put_all([first, second, third])

        apply = store.apply

        async def failing_apply(record_id, transform):
            if record_id == second.id:
                raise LocalStoreError("apply", record_id=record_id)
            return await apply(record_id, transform)

        store.apply = failing_apply

        with pytest.raises(LocalStoreError):
            await reconciler.reconcile()

        assert (await store.get_by_id(first.id)).is_synced
        assert (await store.get_by_id(second.id)).sync_state is SyncState.PENDING_CREATE
        assert await store.get_by_id(third.id) == third
        assert remote.get(third.id) is None
        assert remote.stats.fetch_all == 0
