"""
Offline notes sync engine.

Wires the local store, remote gateway, connectivity signal, reconciler,
coordinator and repository together and exposes the commands and live
values a presentation layer needs.

Usage:
    from offline_notes_sync import SyncSettings, create_engine

    engine = await create_engine(SyncSettings(db_path="notes.db"))
    await engine.initial_load()

    note = await engine.create_record("Groceries", "milk, eggs")
    engine.sync_status.value   # SyncStatus.PENDING, then SYNCING, IDLE

    await engine.close()
"""

from __future__ import annotations

import logging

from .config import SyncSettings
from .exceptions import NoConnectionError
from .live import LiveValue
from .projections import NotesScreenState, observe_screen_state
from .records import Record
from .remote import FileRemoteGateway, RemoteGateway, SimulatedRemoteGateway
from .repository import NoteRepository
from .store import RecordStore, SQLiteRecordStore, SQLiteStoreConfig
from .sync import (
    BackoffPolicy,
    ConnectivityMonitor,
    ReconcileResult,
    Reconciler,
    SyncCoordinator,
    SyncStatus,
)
from .sync.connectivity import DEFAULT_PROBE_HOST

logger = logging.getLogger(__name__)


class NotesSyncEngine:
    """Offline-first notes with background sync.

    Writes land in the local store immediately and schedule a sync; the
    coordinator pushes them once connectivity allows.
    """

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteGateway,
        connectivity: ConnectivityMonitor | None = None,
        policy: BackoffPolicy | None = None,
        auto_sync_interval: float | None = None,
        probe_interval: float | None = None,
    ):
        """Initialize the engine.

        Args:
            store: Local record store
            remote: Remote authority
            connectivity: Connectivity signal (default: always online until told otherwise)
            policy: Retry policy for scheduled passes
            auto_sync_interval: Seconds between periodic passes (None disables)
            probe_interval: Seconds between connectivity probes (None disables)
        """
        self.store = store
        self.remote = remote
        self.connectivity = connectivity or ConnectivityMonitor()
        self.probe_interval = probe_interval

        self.reconciler = Reconciler(store, remote, self.connectivity)
        self.coordinator = SyncCoordinator(
            store,
            self.reconciler,
            self.connectivity,
            policy=policy,
            auto_sync_interval=auto_sync_interval,
        )
        self.repository = NoteRepository(store)

        self.is_loading: LiveValue[bool] = LiveValue(False)
        self._screen_state: LiveValue[NotesScreenState] | None = None
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._started:
            return
        await self.store.initialize()
        await self.coordinator.start()
        if self.probe_interval:
            self.connectivity.start_polling(self.probe_interval)
        self._started = True
        logger.info("Notes sync engine started")

    async def close(self) -> None:
        if not self._started:
            return
        await self.connectivity.stop_polling()
        await self.coordinator.close()
        await self.remote.close()
        await self.store.close()
        self._started = False
        logger.info("Notes sync engine closed")

    async def __aenter__(self) -> NotesSyncEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_record(self, title: str, content: str = "") -> Record:
        record = await self.repository.create_note(title, content)
        self.coordinator.schedule_sync()
        return record

    async def edit_record(self, record_id: str, title: str, content: str = "") -> Record:
        record = await self.repository.edit_note(record_id, title, content)
        self.coordinator.schedule_sync()
        return record

    async def delete_record(self, record_id: str) -> bool:
        deleted = await self.repository.delete_note(record_id)
        if deleted:
            self.coordinator.schedule_sync()
        return deleted

    def refresh(self) -> bool:
        """Sync as soon as connected, replacing any queued pass."""
        return self.coordinator.request_sync_now()

    async def retry(self) -> int:
        """Retry every failed note now.

        Returns:
            Number of notes moved back to pending
        """
        return await self.coordinator.retry_failed()

    async def initial_load(self) -> ReconcileResult | None:
        """Pull the remote record set once at startup.

        Local pending changes are left alone. Offline, this is a no-op and
        the next pass picks the data up.

        Returns:
            Result of the pull, or None if offline
        """
        self.is_loading.publish(True)
        try:
            result = await self.reconciler.pull()
        except NoConnectionError:
            logger.info("Initial load skipped: offline")
            return None
        finally:
            self.is_loading.publish(False)

        if result.pull_failed:
            logger.warning(f"Initial load failed: {'; '.join(result.errors)}")
        else:
            logger.info(f"Initial load pulled {result.pulled_count} notes")
        return result

    async def sync_now(self) -> ReconcileResult | None:
        """Run a pass and wait for it. See ``SyncCoordinator.sync_now``."""
        return await self.coordinator.sync_now()

    async def wait_idle(self) -> None:
        await self.coordinator.wait_idle()

    # =========================================================================
    # Live state
    # =========================================================================

    @property
    def notes(self) -> LiveValue[list[Record]]:
        return self.repository.observe_notes()

    @property
    def sync_status(self) -> LiveValue[SyncStatus]:
        return self.coordinator.status

    @property
    def pending_count(self) -> LiveValue[int]:
        return self.store.observe_pending_count()

    @property
    def is_online(self) -> LiveValue[bool]:
        return self.connectivity.online

    @property
    def last_error(self) -> LiveValue[str | None]:
        return self.coordinator.last_error

    @property
    def screen_state(self) -> LiveValue[NotesScreenState]:
        if self._screen_state is None:
            self._screen_state = observe_screen_state(
                notes=self.notes,
                is_loading=self.is_loading,
                sync_status=self.sync_status,
                is_online=self.is_online,
                pending_count=self.pending_count,
                last_error=self.last_error,
            )
        return self._screen_state


async def create_engine(
    settings: SyncSettings | None = None,
    remote: RemoteGateway | None = None,
) -> NotesSyncEngine:
    """Build and start a SQLite-backed engine from settings.

    Args:
        settings: Engine settings (default: ``SyncSettings.from_env()``)
        remote: Remote gateway; defaults to a simulated one, file-backed
            when ``remote_state_path`` is set

    Returns:
        A started engine
    """
    settings = settings or SyncSettings.from_env()

    if remote is None:
        simulation = dict(
            failure_rate=settings.remote_failure_rate,
            min_delay=settings.remote_min_delay,
            max_delay=settings.remote_max_delay,
        )
        state_path = settings.resolved_remote_state_path
        if state_path is not None:
            remote = await FileRemoteGateway.open(state_path, **simulation)
        else:
            remote = SimulatedRemoteGateway(**simulation)

    engine = NotesSyncEngine(
        store=SQLiteRecordStore(SQLiteStoreConfig(db_path=settings.resolved_db_path)),
        remote=remote,
        connectivity=ConnectivityMonitor(
            online=settings.start_online,
            probe_host=settings.probe_host or DEFAULT_PROBE_HOST,
        ),
        policy=settings.backoff_policy(),
        auto_sync_interval=settings.auto_sync_interval,
        probe_interval=settings.probe_interval if settings.probe_host else None,
    )
    await engine.start()
    return engine
