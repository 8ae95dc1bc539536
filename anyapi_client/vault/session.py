"""
Credential session management - negotiates and tracks the vault session token.

The password is exchanged for an opaque, expiring token and is never kept
after the negotiation call returns. Only the token and its expiry are
persisted, so a restart can resume without re-entering the password.
"""

import asyncio
import hashlib
import secrets
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from ..errors import AnyApiError, AuthenticationRejected, ClientError, CryptoUnavailable
from ..logging import get_logger
from ..result import Result, run_strategies
from ..transport import RequestExecutor
from .crypto import (
    encrypt_for_transmission,
    generate_session_id,
    generate_session_token,
    is_crypto_available,
)
from .models import (
    EncryptionMetadata,
    PlainUnlockRequest,
    SecureUnlockRequest,
    SecureUnlockResponse,
    Session,
    UnlockResponse,
)
from .persistence import (
    LEGACY_PASSWORD_KEY,
    SESSION_EXPIRY_KEY,
    SESSION_TOKEN_KEY,
    SessionStore,
)

logger = get_logger("session")

SECURE_UNLOCK_ENDPOINT = "/api/auth/secure-unlock"
PLAIN_UNLOCK_ENDPOINT = "/api/secrets/unlock"
SESSION_ID_HEADER = "X-Session-ID"
DEFAULT_SESSION_TTL = 3600

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_expiry(raw: str) -> datetime:
    expires_at = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


class CredentialState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NEGOTIATING = "negotiating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class CredentialSession:
    """Owns the Session: negotiation, expiry, persistence and auth headers."""

    def __init__(
        self,
        executor: RequestExecutor,
        store: SessionStore,
        *,
        clock: Optional[Clock] = None,
        default_ttl: int = DEFAULT_SESSION_TTL,
        session_id: Optional[str] = None,
    ):
        self._executor = executor
        self._store = store
        self._clock = clock or utcnow
        self._default_ttl = default_ttl
        self._session = Session(session_id=session_id or generate_session_id())
        self._lock = asyncio.Lock()
        self._negotiating = False
        self._inflight: dict[str, asyncio.Future] = {}
        self._flight_salt = secrets.token_bytes(16)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._session.expires_at

    @property
    def has_token(self) -> bool:
        return self._session.token is not None

    @property
    def is_authenticated(self) -> bool:
        """Token present and not yet at its expiry instant."""
        return self._session.authenticated_at(self._clock())

    def is_expired(self) -> bool:
        expires_at = self._session.expires_at
        return expires_at is not None and self._clock() > expires_at

    @property
    def state(self) -> CredentialState:
        if self._negotiating:
            return CredentialState.NEGOTIATING
        if self.is_authenticated:
            return CredentialState.AUTHENTICATED
        if self.has_token:
            return CredentialState.EXPIRED
        return CredentialState.UNAUTHENTICATED

    def snapshot(self) -> Session:
        """Copy of the current session, safe to hand out."""
        return replace(self._session)

    def get_auth_header(self) -> dict[str, str]:
        """Bearer + session id headers, or {} when not authenticated."""
        if not self.is_authenticated:
            return {}
        return {
            "Authorization": f"Bearer {self._session.token}",
            SESSION_ID_HEADER: self._session.session_id,
        }

    def status(self) -> dict:
        """Debug snapshot. Never includes the token itself."""
        return {
            "authenticated": self.is_authenticated,
            "has_token": self.has_token,
            "expired": self.is_expired(),
            "session_id": self._session.session_id,
            "expires_at": self._session.expires_at.isoformat() if self._session.expires_at else None,
        }

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    def _flight_key(self, password: str) -> str:
        return hashlib.sha256(self._flight_salt + password.encode("utf-8")).hexdigest()

    async def authenticate(self, password: str) -> Result[Session]:
        """Exchange the password for a session token.

        Tries the secure path first and falls back to the plain path. Callers
        that arrive while a negotiation for the same password is in flight
        share its result instead of issuing another unlock request. Failures
        are returned, never retried here.
        """
        key = self._flight_key(password)
        flight = self._inflight.get(key)
        if flight is None:
            flight = asyncio.ensure_future(self._negotiate(password))
            self._inflight[key] = flight
            flight.add_done_callback(lambda _f: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight negotiation")
        return await asyncio.shield(flight)

    async def _negotiate(self, password: str) -> Result[Session]:
        async with self._lock:
            self._negotiating = True
            try:
                result = await run_strategies([
                    ("secure", lambda: self._secure_unlock(password)),
                    ("plain", lambda: self._plain_unlock(password)),
                ])
            finally:
                self._negotiating = False

        if result.is_ok:
            logger.info(f"Session established via {result.strategy} path")
        else:
            logger.warning(f"Negotiation failed: {type(result.error).__name__}: {result.error}")
        return result

    async def _secure_unlock(self, password: str) -> Result[Session]:
        if not is_crypto_available():
            return Result.fallback(CryptoUnavailable("AES-GCM is not available"))

        try:
            wrapped = encrypt_for_transmission(
                password,
                self.session_id,
                clock=lambda: self._clock().timestamp(),
            )
        except CryptoUnavailable as e:
            return Result.fallback(e)

        body = SecureUnlockRequest(
            encrypted_password=wrapped.encrypted,
            encryption_metadata=EncryptionMetadata.model_validate(wrapped.metadata()),
            session_id=self.session_id,
            is_secure_auth=True,
        ).model_dump(by_alias=True)

        try:
            data = await self._executor.post(
                SECURE_UNLOCK_ENDPOINT,
                json=body,
                headers={SESSION_ID_HEADER: self.session_id},
                include_auth=False,
                max_retries=1,
            )
            response = SecureUnlockResponse.model_validate(data)
        except (AnyApiError, ValidationError) as e:
            return Result.fallback(e)

        if not response.success:
            return Result.fallback(AuthenticationRejected(str(response.error or "Secure unlock refused")))

        token = response.session_token or generate_session_token(
            self.session_id, clock=lambda: self._clock().timestamp()
        )
        return Result.ok(self._establish(token, response.expires_in))

    async def _plain_unlock(self, password: str) -> Result[Session]:
        logger.warning("Using plain unlock path: password relies on transport security only")

        body = PlainUnlockRequest(
            password=password,
            session_id=self.session_id,
        ).model_dump(by_alias=True)

        try:
            data = await self._executor.post(
                PLAIN_UNLOCK_ENDPOINT,
                json=body,
                headers={SESSION_ID_HEADER: self.session_id},
                include_auth=False,
                max_retries=1,
            )
        except ClientError as e:
            if e.status in (401, 403):
                return Result.err(AuthenticationRejected(str(e), status=e.status))
            return Result.err(e)
        except AnyApiError as e:
            return Result.err(e)

        try:
            response = UnlockResponse.model_validate(data)
        except ValidationError as e:
            return Result.err(e)

        if not response.success:
            return Result.err(AuthenticationRejected(str(response.error or "Failed to unlock vault")))

        token = generate_session_token(self.session_id, clock=lambda: self._clock().timestamp())
        return Result.ok(self._establish(token, self._default_ttl))

    def _establish(self, token: str, expires_in: Optional[int]) -> Session:
        ttl = expires_in if expires_in else self._default_ttl
        self._session.token = token
        self._session.expires_at = self._clock() + timedelta(seconds=ttl)

        # Store only the session token, never the password
        self._store.set(SESSION_TOKEN_KEY, token)
        self._store.set(SESSION_EXPIRY_KEY, self._session.expires_at.isoformat())
        self.purge_legacy_password()

        logger.info(
            f"Session {self.session_id[:8]} valid for {ttl}s",
            extra={"session_id": self.session_id[:8]},
        )
        return self.snapshot()

    # ------------------------------------------------------------------
    # Persistence and teardown
    # ------------------------------------------------------------------

    def restore(self) -> bool:
        """Reload a persisted, unexpired token. Does not assert the vault is unlocked."""
        token = self._store.get(SESSION_TOKEN_KEY)
        expiry_raw = self._store.get(SESSION_EXPIRY_KEY)

        if not token or not expiry_raw:
            if token or expiry_raw:
                self.clear()
            return False

        try:
            expires_at = _parse_expiry(expiry_raw)
        except ValueError:
            logger.warning("Discarding persisted session with unparseable expiry")
            self.clear()
            return False

        if self._clock() >= expires_at:
            logger.info("Persisted session already expired")
            self.clear()
            return False

        self._session.token = token
        self._session.expires_at = expires_at
        logger.info("Session restored from storage")
        return True

    def purge_legacy_password(self) -> None:
        """Remove the plaintext password cache written by older clients."""
        if self._store.get(LEGACY_PASSWORD_KEY) is not None:
            logger.warning("Removing cached plaintext password left by an older client")
        self._store.remove(LEGACY_PASSWORD_KEY)

    def clear(self) -> None:
        """Wipe the token and expiry from memory and storage."""
        self._session.token = None
        self._session.expires_at = None
        self._store.remove(SESSION_TOKEN_KEY)
        self._store.remove(SESSION_EXPIRY_KEY)
        self.purge_legacy_password()
        logger.info("Session cleared")

    def invalidate(self, reason: str) -> None:
        """Drop the session because the backend no longer honours it."""
        logger.warning(f"Invalidating session {self.session_id[:8]}: {reason}")
        self.clear()

    def expire(self) -> None:
        """Drop a session whose expiry has passed."""
        logger.info(f"Session {self.session_id[:8]} expired")
        self.clear()
