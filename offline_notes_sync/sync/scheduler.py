"""
Single-flight background scheduler for reconciliation passes.

Runs at most one pass at a time. A pass waits for connectivity before it
starts; a pass that finds the connection gone is parked until connectivity
resumes rather than retried on a timer. Any other failure is retried with
exponential backoff up to a fixed number of attempts, after which the pass
is abandoned until the next trigger.

Requests are coalesced:
- ``enqueue()`` while a pass is queued is a no-op.
- ``enqueue()`` while a pass is running remembers one follow-up pass.
- ``enqueue(replace=True)`` cancels a queued pass that has not started
  and queues a fresh one. A running pass is never interrupted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..exceptions import NoConnectionError, SchedulerExhaustedError
from .connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)


@dataclass
class BackoffPolicy:
    """Retry policy for passes that fail unexpectedly."""

    max_attempts: int = 3
    base_delay: float = 30.0  # seconds
    multiplier: float = 2.0
    max_delay: float = 3600.0  # cap

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after failed ``attempt`` (1-based)."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


class SyncScheduler:
    """Single-flight queue for one kind of background job.

    Example:
        >>> scheduler = SyncScheduler(job=reconciler.reconcile, connectivity=monitor)
        >>> scheduler.enqueue()
        >>> await scheduler.wait_idle()
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        connectivity: ConnectivityMonitor,
        policy: BackoffPolicy | None = None,
        should_rerun: Callable[[], Awaitable[bool]] | None = None,
        on_exhausted: Callable[[SchedulerExhaustedError], None] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            job: Coroutine function running one pass
            connectivity: Signal the pass waits on before starting
            policy: Retry policy for unexpected failures
            should_rerun: Checked before running a remembered follow-up pass
            on_exhausted: Called when a pass is abandoned after its last attempt
        """
        self.job = job
        self.connectivity = connectivity
        self.policy = policy or BackoffPolicy()
        self.should_rerun = should_rerun
        self.on_exhausted = on_exhausted

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._rerun = False
        self._closed = False
        self.completed_passes = 0

    @property
    def is_running(self) -> bool:
        """True while the job itself is executing."""
        return self._running

    @property
    def is_queued(self) -> bool:
        """True while a pass waits for connectivity or a backoff delay."""
        return self._task is not None and not self._task.done() and not self._running

    @property
    def is_idle(self) -> bool:
        return self._task is None or self._task.done()

    def enqueue(self, replace: bool = False) -> bool:
        """Request a pass.

        Args:
            replace: Cancel a queued-but-not-started pass and queue a new one

        Returns:
            True if a new pass was queued, False if the request was coalesced
        """
        if self._closed:
            return False

        if self._running:
            self._rerun = True
            logger.debug("Sync pass running; follow-up pass remembered")
            return False

        if not self.is_idle:
            if not replace:
                logger.debug("Sync pass already queued; request coalesced")
                return False
            logger.debug("Replacing queued sync pass")
            self._task.cancel()

        self._task = asyncio.create_task(self._worker())
        return True

    async def wait_idle(self) -> None:
        """Wait until no pass is queued or running."""
        while self._task is not None and not self._task.done():
            # A replaced task finishes cancelled; loop onto its successor
            await asyncio.wait({self._task})

    async def close(self) -> None:
        """Cancel any queued pass and wait for a running one to finish."""
        self._closed = True
        self._rerun = False
        if self._task is None:
            return
        if not self._running:
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _worker(self) -> None:
        while True:
            await self._run_pass()
            if not self._rerun or self._closed:
                return
            self._rerun = False
            if self.should_rerun is not None and not await self.should_rerun():
                logger.debug("Follow-up sync pass no longer needed")
                return

    async def _run_pass(self) -> None:
        attempt = 0
        while True:
            await self.connectivity.wait_online()

            self._running = True
            try:
                await self.job()
            except NoConnectionError as e:
                if not self.connectivity.is_online:
                    logger.info("Sync pass deferred until connectivity resumes")
                    continue
                attempt, delay = self._failed(attempt, e)
            except Exception as e:
                attempt, delay = self._failed(attempt, e)
            else:
                self.completed_passes += 1
                return
            finally:
                self._running = False

            if delay is None:
                return
            await asyncio.sleep(delay)

    def _failed(self, attempt: int, error: Exception) -> tuple[int, float | None]:
        """Record a failed attempt.

        Returns:
            The attempt count and the backoff delay, or None once exhausted
        """
        attempt += 1
        if attempt >= self.policy.max_attempts:
            logger.error(f"Sync pass abandoned after {attempt} attempts: {error}")
            if self.on_exhausted is not None:
                self.on_exhausted(SchedulerExhaustedError(attempt, error))
            return attempt, None

        delay = self.policy.delay_for(attempt)
        logger.warning(
            f"Sync pass failed, attempt={attempt}/{self.policy.max_attempts} "
            f"delay={delay:.1f}s: {error}"
        )
        return attempt, delay
