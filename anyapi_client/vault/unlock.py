"""Password-entry orchestration for unlocking the vault."""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import AnyApiError, AuthenticationRejected, VaultStateMismatch
from ..events import Event, Notifier
from ..logging import get_logger
from .models import Session
from .session import CredentialSession
from .status import VaultStatusCoordinator

logger = get_logger("unlock")

DEFAULT_MAX_ATTEMPTS = 3


class CapturedPassword:
    """Mutable holder for a typed password that can be zeroed after use.

    The ``str`` handed to the transport is immutable and lives until the
    garbage collector reclaims it; only this buffer can be wiped.
    """

    def __init__(self, password: str):
        self._buffer = bytearray(password.encode("utf-8"))

    def reveal(self) -> str:
        return self._buffer.decode("utf-8")

    def is_blank(self) -> bool:
        return not self._buffer.strip()

    @property
    def wiped(self) -> bool:
        return len(self._buffer) == 0

    def wipe(self) -> None:
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = bytearray()

    def __repr__(self) -> str:
        return "CapturedPassword(<hidden>)"


@dataclass
class PromptRequest:
    """What the password prompt is told before asking."""
    attempt: int
    max_attempts: int
    message: Optional[str] = None


PasswordPrompt = Callable[[PromptRequest], Union[Optional[str], Awaitable[Optional[str]]]]


@dataclass
class UnlockOutcome:
    success: bool
    attempts: int
    lockout_reached: bool = False
    skipped: bool = False
    error: Optional[str] = None
    session: Optional[Session] = None


class UnlockFlow:
    """Collects a password, negotiates a session and announces the result.

    Hitting ``max_attempts`` failures only produces a warning; the user may
    keep trying or skip.
    """

    def __init__(
        self,
        session: CredentialSession,
        coordinator: VaultStatusCoordinator,
        notifier: Notifier,
        *,
        prompt: Optional[PasswordPrompt] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session = session
        self._coordinator = coordinator
        self._notifier = notifier
        self._prompt = prompt
        self.max_attempts = max_attempts
        self._attempts = 0
        self._last_error: Optional[str] = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def lockout_reached(self) -> bool:
        return self._attempts >= self.max_attempts

    def set_prompt(self, prompt: Optional[PasswordPrompt]) -> None:
        self._prompt = prompt

    async def submit(self, password: Union[str, CapturedPassword]) -> UnlockOutcome:
        """Try to unlock with ``password``. The captured copy is wiped either way."""
        captured = password if isinstance(password, CapturedPassword) else CapturedPassword(password)
        try:
            if captured.is_blank():
                return UnlockOutcome(
                    success=False,
                    attempts=self._attempts,
                    error="Please enter your vault password",
                )
            result = await self._session.authenticate(captured.reveal())
        finally:
            captured.wipe()

        if result.is_ok:
            return await self._on_success(result.value, result.strategy)
        return self._on_failure(result.error)

    async def _on_success(self, session: Session, path: Optional[str]) -> UnlockOutcome:
        self._coordinator.mark_unlocked()

        try:
            await self._coordinator.refresh()
        except (AnyApiError, ValueError) as e:
            logger.warning(f"Vault status refresh after unlock failed: {e}")
        else:
            # The backend has the final word on whether the unlock took
            if not self._coordinator.is_unlocked:
                return self._on_failure(
                    VaultStateMismatch("backend still reports the vault locked")
                )

        self._attempts = 0
        self._last_error = None
        logger.info(f"Vault unlocked ({path} path)")
        self._notifier.publish(Event.UNLOCKED, {"session_id": session.session_id, "path": path})
        return UnlockOutcome(success=True, attempts=0, session=session)

    def _on_failure(self, error: Optional[Exception]) -> UnlockOutcome:
        self._attempts += 1
        message = f"Failed to unlock vault: {error}"
        if not isinstance(error, AuthenticationRejected):
            logger.error(f"Unlock attempt {self._attempts} failed: {type(error).__name__}: {error}")

        if self.lockout_reached:
            message += " (Maximum attempts reached - you can continue without the vault)"
            logger.warning(f"Unlock failed {self._attempts} time(s); lockout threshold reached")

        self._last_error = message
        return UnlockOutcome(
            success=False,
            attempts=self._attempts,
            lockout_reached=self.lockout_reached,
            error=message,
        )

    async def run(self) -> UnlockOutcome:
        """Ask the prompt for a password once and submit it. ``None`` means skip."""
        if self._prompt is None:
            raise RuntimeError("No password prompt configured")

        request = PromptRequest(
            attempt=self._attempts + 1,
            max_attempts=self.max_attempts,
            message=self._last_error,
        )
        password = self._prompt(request)
        if inspect.isawaitable(password):
            password = await password

        if password is None:
            self.skip()
            return UnlockOutcome(success=False, attempts=self._attempts, skipped=True)
        return await self.submit(password)

    def skip(self) -> None:
        """Continue without the vault."""
        self._coordinator.skip()
        self._notifier.publish(Event.UNLOCK_SKIPPED, {"attempts": self._attempts})

    async def ensure_access(self) -> bool:
        """Prompt until the vault is unlocked (True) or the user skips (False)."""
        if not self._coordinator.needs_unlock:
            return True

        while True:
            outcome = await self.run()
            if outcome.success:
                return True
            if outcome.skipped:
                return False
