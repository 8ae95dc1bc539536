"""
Vault status coordination - keeps local lock state in line with the backend.

The backend is the sole source of truth. When it reports the vault locked,
any session the client still holds is invalidated on the spot, so a stale
local belief can never keep handing out headers that need vault secrets.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Generic, Optional, TypeVar

from ..errors import AnyApiError, VaultStateMismatch
from ..events import Event, Notifier
from ..logging import get_logger
from ..transport import RequestExecutor
from .models import SecretStoreInfo, VaultProvider, VaultState, VaultStatus
from .session import CredentialSession

logger = get_logger("vault")

SECRETS_INFO_ENDPOINT = "/api/secrets/info"

T = TypeVar("T")


class Debouncer(Generic[T]):
    """Coalesces triggers that arrive within ``window`` seconds into one call.

    Every trigger restarts the window. All triggers of one window share the
    future that resolves to the single call's result.
    """

    def __init__(self, fn: Callable[[], Awaitable[T]], window: float):
        self._fn = fn
        self.window = window
        self._handle: Optional[asyncio.TimerHandle] = None
        self._future: Optional[asyncio.Future] = None
        self._running: set[asyncio.Task] = set()

    def trigger(self) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        if self._future is None:
            self._future = loop.create_future()
        self._handle = loop.call_later(self.window, self._fire)
        return self._future

    def _fire(self) -> None:
        future, self._future, self._handle = self._future, None, None
        task = asyncio.ensure_future(self._fn())
        self._running.add(task)
        task.add_done_callback(partial(self._settle, future))

    def _settle(self, future: asyncio.Future, task: asyncio.Task) -> None:
        self._running.discard(task)
        if future.done():
            return
        if task.cancelled():
            future.cancel()
        elif task.exception() is not None:
            future.set_exception(task.exception())
        else:
            future.set_result(task.result())

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._future = None
        for task in list(self._running):
            task.cancel()


class VaultStatusCoordinator:
    """Owns VaultStatus and drives the checking/locked/unlocked state machine."""

    def __init__(
        self,
        executor: RequestExecutor,
        session: CredentialSession,
        notifier: Notifier,
        *,
        debounce: float = 0.25,
    ):
        self._executor = executor
        self._session = session
        self._notifier = notifier
        self._status: Optional[VaultStatus] = None
        self._state = VaultState.CHECKING
        # Set after skip/expiry/auth-required; cleared by a successful unlock
        self._session_required = False
        self._debouncer: Debouncer[Optional[VaultStatus]] = Debouncer(self._refresh_quietly, debounce)

        notifier.subscribe(Event.AUTH_REQUIRED, self._on_auth_required)

    @property
    def status(self) -> Optional[VaultStatus]:
        return self._status

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state is VaultState.UNLOCKED

    @property
    def needs_unlock(self) -> bool:
        """A persistent vault-manager vault exists and we cannot use it yet."""
        status = self._status
        if status is None:
            return False
        return status.provider is VaultProvider.VAULT_MANAGER and status.available and not self.is_unlocked

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> VaultStatus:
        """Fetch the backend's vault status and reconcile local state with it."""
        data = await self._executor.get(SECRETS_INFO_ENDPOINT)
        status = VaultStatus.from_info(SecretStoreInfo.from_response(data))
        return self._apply(status)

    def _apply(self, status: VaultStatus) -> VaultStatus:
        locally_unlocked = self._state is VaultState.UNLOCKED or self._session.is_authenticated

        if not status.unlocked:
            if locally_unlocked:
                mismatch = VaultStateMismatch(
                    "Backend reports vault locked but local state believed it unlocked"
                )
                logger.warning(str(mismatch))
            if self._session.has_token:
                self._session.invalidate("backend reports vault locked")
        elif self._session.has_token and not self._session.is_authenticated:
            self._session.expire()
            self._session_required = True

        new_state = (
            VaultState.UNLOCKED
            if status.unlocked and not self._session_required
            else VaultState.LOCKED
        )
        self._transition(new_state, status)
        return status

    def _transition(self, new_state: VaultState, status: Optional[VaultStatus] = None) -> None:
        previous_state, previous_status = self._state, self._status
        self._state = new_state
        if status is not None:
            self._status = status

        if previous_state is new_state and previous_status == self._status:
            return

        if previous_state is not new_state:
            logger.info(f"Vault state changed: {previous_state.value} -> {new_state.value}")
        self._notifier.publish(Event.STATUS_CHANGED, {
            "state": new_state.value,
            "previous": previous_state.value,
            "provider": self._status.provider.value if self._status else None,
            "available": self._status.available if self._status else None,
            "unlocked": self._status.unlocked if self._status else None,
        })

    async def _refresh_quietly(self) -> Optional[VaultStatus]:
        try:
            return await self.refresh()
        except (AnyApiError, ValueError) as e:
            logger.warning(f"Vault status refresh failed: {type(e).__name__}: {e}")
            return None

    def schedule_refresh(self) -> asyncio.Future:
        """Debounced, fire-and-forget refresh. Failures are logged, not raised."""
        return self._debouncer.trigger()

    async def request_refresh(self) -> Optional[VaultStatus]:
        """Debounced refresh; callers within one window share a single fetch."""
        return await asyncio.shield(self._debouncer.trigger())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def reconcile_on_startup(self) -> VaultState:
        """Confirm a restored session against the backend before trusting it."""
        restored = self._session.is_authenticated
        try:
            status = await self.refresh()
        except (AnyApiError, ValueError) as e:
            logger.warning(f"Could not confirm vault status on startup: {e}")
            if restored:
                self._session.clear()
            return self._state

        if restored and status.unlocked:
            logger.info("Restored session confirmed by backend")
        return self._state

    def mark_unlocked(self) -> None:
        """Record a successful unlock so the next refresh may report unlocked."""
        self._session_required = False

    def skip(self) -> None:
        """The user chose to continue without the vault."""
        logger.info("Vault unlock skipped, clearing session")
        self._session.clear()
        self._session_required = True
        self._transition(VaultState.LOCKED)

    def _on_auth_required(self, event: Event, payload: dict) -> None:
        reason = payload.get("reason") or "authentication required"
        if self._session.has_token:
            self._session.invalidate(reason)
        self._session_required = True
        self._transition(VaultState.LOCKED)
        self.schedule_refresh()

    def recommendations(self) -> list[str]:
        """Storage advice for the current backend setup."""
        status = self._status
        if status is None:
            return ["Unable to determine storage configuration"]

        recommendations = []
        if status.provider is not VaultProvider.VAULT_MANAGER:
            if status.management_available:
                recommendations.append("Consider using SecretManagement for enhanced security and features")
            else:
                recommendations.append("Install Microsoft.PowerShell.SecretManagement for optimal security")

        if status.provider is VaultProvider.IN_MEMORY:
            recommendations.append("Current setup provides no persistence - secrets will be lost when session ends")
            recommendations.append("Install SecretManagement modules for persistent secure storage")

        if status.provider is VaultProvider.VAULT_MANAGER and not self.is_unlocked:
            recommendations.append("Unlock SecretStore to enable persistent secret storage")

        if not recommendations:
            recommendations.append("Your secret storage is optimally configured")

        return recommendations

    def close(self) -> None:
        self._debouncer.cancel()
