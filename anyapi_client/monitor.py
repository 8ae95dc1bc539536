"""Background connectivity monitor against the backend health endpoint."""

import asyncio
from typing import Optional

from .errors import AnyApiError
from .events import Event, Notifier
from .logging import get_logger
from .transport import RequestExecutor
from .vault.status import VaultStatusCoordinator

logger = get_logger("monitor")

HEALTH_ENDPOINT = "/api/health"


class ConnectionMonitor:
    """Tracks whether the backend answers /api/health.

    Connectivity is reported separately from vault status. When the backend
    comes back after being unreachable, a debounced vault refresh is queued.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        notifier: Notifier,
        *,
        coordinator: Optional[VaultStatusCoordinator] = None,
        interval: float = 30.0,
        timeout: float = 5.0,
    ):
        self._executor = executor
        self._notifier = notifier
        self._coordinator = coordinator
        self.interval = interval
        self.timeout = timeout
        self.connected: Optional[bool] = None
        self.consecutive_failures = 0

    async def check(self) -> bool:
        """Check the backend health once. Returns True when it is reachable and healthy."""
        try:
            body = await self._executor.get(
                HEALTH_ENDPOINT,
                timeout=self.timeout,
                include_auth=False,
            )
            healthy = not (isinstance(body, dict) and body.get("success") is False)
        except AnyApiError as e:
            logger.warning(f"Connection check failed: {e}")
            healthy = False

        self._set_connected(healthy)
        return healthy

    def _set_connected(self, connected: bool) -> None:
        previous = self.connected
        self.connected = connected

        if connected:
            if self.consecutive_failures > 0:
                logger.info(f"Connection recovered after {self.consecutive_failures} failures")
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1
            if self.consecutive_failures >= 3:
                logger.warning(f"Health check: {self.consecutive_failures} consecutive failures")

        if previous is connected:
            return

        self._notifier.publish(Event.CONNECTION_CHANGED, {"connected": connected})
        if connected and previous is False and self._coordinator is not None:
            logger.info("Connection restored, refreshing vault status")
            self._coordinator.schedule_refresh()

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Poll the health endpoint until shutdown_event is set."""
        while not shutdown_event.is_set():
            await self.check()

            # Wait for the interval, but exit immediately on shutdown
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
