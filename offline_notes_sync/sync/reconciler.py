"""
Push/pull reconciliation between the local store and the remote authority.

One pass:
- Push: every pending record (including previously failed ones) is sent to
  the remote with the verb its state calls for. Failures are recorded on
  the record as SYNC_FAILED and the pass moves on.
- Pull: the full remote record set is fetched and written locally as
  SYNCED, except for records that were pending when the pass began or
  that a local write has touched since. Last write observed wins.

Only a missing connection (before anything happens) or a local store
failure aborts a pass.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace

from ..exceptions import NoConnectionError
from ..records import PushAction, Record, SyncState
from ..remote import RemoteGateway
from ..store import RecordStore
from .connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of one reconciliation pass."""

    synced_count: int = 0
    failed_count: int = 0
    pulled_count: int = 0
    pull_failed: bool = False
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.failed_count == 0 and not self.pull_failed


class Reconciler:
    """Runs push/pull passes against the remote gateway.

    The reconciler holds no record state between calls; everything it
    reads and writes goes through the store.
    """

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteGateway,
        connectivity: ConnectivityMonitor,
    ):
        """Initialize the reconciler.

        Args:
            store: Local record store (source of truth)
            remote: Remote authority
            connectivity: Connectivity signal checked before each pass
        """
        self.store = store
        self.remote = remote
        self.connectivity = connectivity

    async def reconcile(self) -> ReconcileResult:
        """Run one push-then-pull pass.

        Returns:
            Result with the number of records pushed successfully

        Raises:
            NoConnectionError: If offline; nothing is touched
            LocalStoreError: If the local store fails; the pass stops
        """
        if not self.connectivity.is_online:
            raise NoConnectionError()

        start = time.monotonic()
        result = ReconcileResult()

        pending = await self.store.pending_records()
        pending_ids = {record.id for record in pending}
        logger.info(f"Reconciliation started: {len(pending)} pending records")

        for record in pending:
            if await self._push(record, result):
                result.synced_count += 1
            else:
                result.failed_count += 1

        await self._pull(pending_ids, result)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Reconciliation finished: synced={result.synced_count} "
            f"failed={result.failed_count} pulled={result.pulled_count} "
            f"pull_failed={result.pull_failed} in {result.duration_ms}ms"
        )
        return result

    async def pull(self) -> ReconcileResult:
        """Run only the pull phase, excluding records pending right now.

        Used for the initial load.

        Raises:
            NoConnectionError: If offline
        """
        if not self.connectivity.is_online:
            raise NoConnectionError()

        result = ReconcileResult()
        pending_ids = {record.id for record in await self.store.pending_records()}
        await self._pull(pending_ids, result)
        return result

    # =========================================================================
    # Push
    # =========================================================================

    async def _push(self, record: Record, result: ReconcileResult) -> bool:
        """Push a single record.

        Returns:
            True if the remote accepted the change
        """
        action = record.push_action
        if action is None:
            return False

        try:
            if action is PushAction.DELETE:
                await self.remote.delete(record.id)
                echo = None
            elif action is PushAction.CREATE:
                echo = await self.remote.create(record)
            else:
                echo = await self.remote.update(record)
        except Exception as e:
            logger.warning(f"Push {action.value} failed for {record.id}: {e}")
            result.errors.append(f"Failed to {action.value} {record.id}: {e}")
            await self.store.apply(record.id, _mark_failed)
            return False

        if echo is None:
            await self.store.apply(record.id, lambda current: _confirm_delete(current, record))
        else:
            await self.store.apply(record.id, lambda current: _confirm_push(current, record, echo))
        return True

    # =========================================================================
    # Pull
    # =========================================================================

    async def _pull(self, pending_ids: set[str], result: ReconcileResult) -> None:
        try:
            remote_records = await self.remote.fetch_all()
        except Exception as e:
            logger.warning(f"Pull failed: {e}")
            result.pull_failed = True
            result.errors.append(f"Pull failed: {e}")
            return

        for remote in remote_records:
            if remote.id in pending_ids:
                continue
            stored = await self.store.apply(
                remote.id, lambda current: _apply_pulled(current, remote)
            )
            if stored is None or not stored.is_synced:
                continue
            if stored.server_version == remote.server_version:
                result.pulled_count += 1


def _mark_failed(current: Record | None) -> Record | None:
    if current is None or current.is_synced:
        return current
    return current.failed()


def _confirm_push(current: Record | None, pushed: Record, echo: Record) -> Record | None:
    """Store the remote echo unless a local write raced with the push."""
    if current is None:
        # Deleted locally while the create was in flight: the remote copy
        # now exists, so it has to be deleted there too
        return pushed.accepted(echo).marked_for_deletion()
    if current == pushed:
        return current.accepted(echo)
    # Local edit made mid-flight wins; keep it pending against the new version
    adopted = replace(current, server_version=echo.server_version)
    if adopted.sync_state in (SyncState.PENDING_CREATE, SyncState.SYNC_FAILED):
        adopted = adopted.failed().retried()
    return adopted


def _confirm_delete(current: Record | None, pushed: Record) -> Record | None:
    if current is None or current == pushed:
        return None
    if current.deleted:
        return None
    # Edited after the delete was sent; the edit revives the note as a create
    return replace(current, sync_state=SyncState.PENDING_CREATE, server_version=0)


def _apply_pulled(current: Record | None, remote: Record) -> Record | None:
    """Last write observed wins, but never over an unsynced local change."""
    if current is None or current.is_synced:
        return remote.marked_synced()
    return current
