"""
Connectivity signal.

Exposes the platform's "online" boolean as a live value. The platform (or a
test) drives it with ``set_online``; ``probe`` offers a simple DNS check for
environments without a native signal.
"""

from __future__ import annotations

import asyncio
import logging
import socket

from ..live import LiveValue

logger = logging.getLogger(__name__)

DEFAULT_PROBE_HOST = "dns.google"


class ConnectivityMonitor:
    """Live boolean connectivity signal."""

    def __init__(
        self,
        online: bool = True,
        probe_host: str = DEFAULT_PROBE_HOST,
        probe_timeout: float = 5.0,
    ):
        """Initialize the monitor.

        Args:
            online: Initial connectivity
            probe_host: Host name resolved by ``probe``
            probe_timeout: Seconds before a probe counts as offline
        """
        self.online: LiveValue[bool] = LiveValue(online)
        self.probe_host = probe_host
        self.probe_timeout = probe_timeout

        self._online_event = asyncio.Event()
        if online:
            self._online_event.set()
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def is_online(self) -> bool:
        return self.online.value

    def set_online(self, online: bool) -> None:
        """Report a connectivity change."""
        if online == self.online.value:
            return
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        if online:
            self._online_event.set()
        else:
            self._online_event.clear()
        self.online.publish(online)

    async def wait_online(self) -> None:
        """Return once connectivity is available."""
        while not self.is_online:
            await self._online_event.wait()

    async def probe(self) -> bool:
        """Check connectivity by resolving ``probe_host``; updates the signal."""
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.getaddrinfo(self.probe_host, None, type=socket.SOCK_STREAM),
                timeout=self.probe_timeout,
            )
            online = True
        except (OSError, TimeoutError):
            online = False
        self.set_online(online)
        return online

    def start_polling(self, interval: float) -> None:
        """Probe every ``interval`` seconds in the background."""
        if self._poll_task is not None:
            return

        async def poll_loop() -> None:
            while True:
                await self.probe()
                await asyncio.sleep(interval)

        self._poll_task = asyncio.create_task(poll_loop())

    async def stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
