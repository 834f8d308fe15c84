"""
Sync coordinator.

Derives one observable sync status from connectivity, pending work and the
in-flight pass, and decides when reconciliation runs:
- after local writes (``schedule_sync``)
- when connectivity resumes with work pending
- on explicit refresh (``request_sync_now``) or retry (``retry_failed``)
- optionally on a fixed interval
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

from ..exceptions import NoConnectionError, SchedulerExhaustedError
from ..live import LiveValue
from ..records import Record, SyncState
from ..store import RecordStore
from .connectivity import ConnectivityMonitor
from .reconciler import ReconcileResult, Reconciler
from .scheduler import BackoffPolicy, SyncScheduler

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Sync failed. Tap to retry."


class SyncStatus(Enum):
    """Overall sync status shown to users."""

    IDLE = "idle"  # Nothing to do, everything up to date
    SYNCING = "syncing"  # A pass is in flight
    PENDING = "pending"  # Local changes waiting to be pushed
    FAILED = "failed"  # Last pass failed and nothing is pending
    OFFLINE = "offline"  # No connectivity


def derive_status(
    online: bool,
    in_flight: bool,
    pending: list[Record],
    last_failed: bool,
) -> SyncStatus:
    """Combine the inputs by precedence: offline, syncing, pending, failed, idle."""
    if not online:
        return SyncStatus.OFFLINE
    if in_flight:
        return SyncStatus.SYNCING
    # SYNC_FAILED records are still pending work
    if pending:
        return SyncStatus.PENDING
    if last_failed:
        return SyncStatus.FAILED
    return SyncStatus.IDLE


class SyncCoordinator:
    """Schedules reconciliation passes and publishes the sync status.

    Example:
        >>> coordinator = SyncCoordinator(store, reconciler, connectivity)
        >>> await coordinator.start()
        >>> coordinator.schedule_sync()
        >>> coordinator.status.value
        <SyncStatus.SYNCING: 'syncing'>
    """

    def __init__(
        self,
        store: RecordStore,
        reconciler: Reconciler,
        connectivity: ConnectivityMonitor,
        policy: BackoffPolicy | None = None,
        auto_sync_interval: float | None = None,
    ):
        """Initialize the coordinator.

        Args:
            store: Local record store
            reconciler: Runs the push/pull passes
            connectivity: Connectivity signal
            policy: Retry policy for scheduled passes
            auto_sync_interval: Seconds between periodic passes (None disables)
        """
        self.store = store
        self.reconciler = reconciler
        self.connectivity = connectivity
        self.auto_sync_interval = auto_sync_interval

        self.status: LiveValue[SyncStatus] = LiveValue(SyncStatus.IDLE)
        self.last_error: LiveValue[str | None] = LiveValue(None)
        self.last_result: ReconcileResult | None = None
        self.last_sync: datetime | None = None

        self.scheduler = SyncScheduler(
            job=self._run_pass,
            connectivity=connectivity,
            policy=policy,
            should_rerun=self._has_pending_work,
            on_exhausted=self._on_exhausted,
        )

        self._in_flight = False
        self._last_failed = False
        self._started = False
        self._pass_lock = asyncio.Lock()
        self._unsubscribe: list[Callable[[], None]] = []
        self._auto_task: asyncio.Task[None] | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start watching connectivity and pending work."""
        if self._started:
            return
        self._started = True

        self._unsubscribe.append(self.connectivity.online.add_listener(self._on_connectivity))
        self._unsubscribe.append(
            self.store.observe_pending().add_listener(lambda _: self._refresh_status())
        )
        self._refresh_status()

        if self.store.observe_pending_count().value > 0:
            self.schedule_sync()

        if self.auto_sync_interval:
            self._auto_task = asyncio.create_task(self._auto_sync_loop(self.auto_sync_interval))

    async def close(self) -> None:
        """Stop triggering passes; waits for a running pass to finish."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

        if self._auto_task is not None:
            self._auto_task.cancel()
            try:
                await self._auto_task
            except asyncio.CancelledError:
                pass
            self._auto_task = None

        await self.scheduler.close()
        self._started = False

    # =========================================================================
    # Commands
    # =========================================================================

    def schedule_sync(self) -> bool:
        """Request a pass once connected. Coalesced with any queued pass.

        Returns:
            True if a new pass was queued
        """
        return self.scheduler.enqueue()

    def request_sync_now(self) -> bool:
        """Replace any queued pass with one that runs as soon as connected."""
        self.last_error.publish(None)
        return self.scheduler.enqueue(replace=True)

    async def retry_failed(self) -> int:
        """Move every SYNC_FAILED record back to pending and sync now.

        Returns:
            Number of records moved back to pending
        """
        failed = [
            r for r in await self.store.pending_records() if r.sync_state is SyncState.SYNC_FAILED
        ]
        for record in failed:
            await self.store.apply(record.id, _retry)

        if failed:
            logger.info(f"Retrying {len(failed)} failed records")
        self._last_failed = False
        self.request_sync_now()
        return len(failed)

    async def sync_now(self) -> ReconcileResult | None:
        """Run a pass through the scheduler and wait for it.

        Returns:
            Result of the last completed pass, or None if it was abandoned

        Raises:
            NoConnectionError: If offline
        """
        if not self.connectivity.is_online:
            raise NoConnectionError()
        self.last_result = None
        self.request_sync_now()
        await self.scheduler.wait_idle()
        return self.last_result

    async def sync_once(self) -> ReconcileResult:
        """Run one pass directly, without the scheduler's queueing or retries.

        Waits for any scheduled pass that is running; passes never overlap.

        Raises:
            NoConnectionError: If offline
            LocalStoreError: If the local store fails
        """
        return await self._run_pass()

    async def wait_idle(self) -> None:
        """Wait until no pass is queued or running."""
        await self.scheduler.wait_idle()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _run_pass(self) -> ReconcileResult:
        async with self._pass_lock:
            return await self._reconcile()

    async def _reconcile(self) -> ReconcileResult:
        self._in_flight = True
        self._refresh_status()
        try:
            result = await self.reconciler.reconcile()
        except Exception:
            # Callers decide whether to retry
            self._in_flight = False
            self._refresh_status()
            raise
        self._in_flight = False

        self.last_result = result
        self.last_sync = datetime.now(UTC)
        self._last_failed = not result.success
        if result.success:
            self.last_error.publish(None)
        elif result.failed_count:
            noun = "note" if result.failed_count == 1 else "notes"
            self.last_error.publish(f"{result.failed_count} {noun} failed to sync. Tap to retry.")
        else:
            self.last_error.publish(RETRY_MESSAGE)
        self._refresh_status()
        return result

    def _on_exhausted(self, error: SchedulerExhaustedError) -> None:
        self._last_failed = True
        self.last_error.publish(RETRY_MESSAGE)
        self._refresh_status()

    def _on_connectivity(self, online: bool) -> None:
        self._refresh_status()
        if online and self.store.observe_pending_count().value > 0:
            self.schedule_sync()

    async def _has_pending_work(self) -> bool:
        return self.connectivity.is_online and bool(await self.store.pending_records())

    async def _auto_sync_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.schedule_sync()

    def _refresh_status(self) -> None:
        status = derive_status(
            online=self.connectivity.is_online,
            in_flight=self._in_flight,
            pending=self.store.observe_pending().value,
            last_failed=self._last_failed,
        )
        if status != self.status.value:
            logger.debug(f"Sync status: {self.status.value.value} -> {status.value}")
            self.status.publish(status)


def _retry(current: Record | None) -> Record | None:
    return current.retried() if current is not None else None
