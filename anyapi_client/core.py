"""ClientCore - wires the executor, session, vault coordinator and monitor together."""

from typing import Optional

import httpx

from .config import ClientConfig
from .events import Notifier
from .logging import get_logger
from .monitor import ConnectionMonitor
from .transport import RequestExecutor
from .vault.models import VaultState
from .vault.persistence import FileSessionStore, SessionStore
from .vault.session import Clock, CredentialSession
from .vault.status import VaultStatusCoordinator
from .vault.unlock import PasswordPrompt, UnlockFlow

logger = get_logger("main")


class ClientCore:
    """One session per process, with every collaborator explicitly owned here.

    Usage:
        async with ClientCore(ClientConfig()) as core:
            if core.coordinator.needs_unlock:
                await core.unlock.submit(password)
            data = await core.executor.get("/api/profiles")
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        store: Optional[SessionStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Clock] = None,
        prompt: Optional[PasswordPrompt] = None,
    ):
        self.config = config or ClientConfig()
        self.notifier = Notifier()
        self.executor = RequestExecutor(
            self.config.base_url,
            timeout=self.config.request_timeout,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            notifier=self.notifier,
            transport=transport,
        )
        self.session = CredentialSession(
            self.executor,
            store if store is not None else FileSessionStore(self.config.session_file),
            clock=clock,
            default_ttl=self.config.session_ttl,
        )
        self.executor.set_auth_provider(self.session.get_auth_header)
        self.coordinator = VaultStatusCoordinator(
            self.executor,
            self.session,
            self.notifier,
            debounce=self.config.refresh_debounce,
        )
        self.unlock = UnlockFlow(
            self.session,
            self.coordinator,
            self.notifier,
            prompt=prompt,
            max_attempts=self.config.max_unlock_attempts,
        )
        self.monitor = ConnectionMonitor(
            self.executor,
            self.notifier,
            coordinator=self.coordinator,
            interval=self.config.health_interval,
            timeout=self.config.health_timeout,
        )

    async def start(self) -> VaultState:
        """Purge legacy caches, restore any persisted session and confirm it with the backend."""
        logger.info(f"Client core starting against {self.config.base_url}")
        self.session.purge_legacy_password()
        if self.session.restore():
            logger.info("Found persisted session, confirming with backend")
        return await self.coordinator.reconcile_on_startup()

    async def close(self) -> None:
        self.coordinator.close()
        await self.notifier.drain()
        await self.executor.close()

    async def __aenter__(self) -> "ClientCore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
