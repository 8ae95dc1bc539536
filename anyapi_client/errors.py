"""Error types raised by the client core."""

from typing import Any, Optional


class AnyApiError(Exception):
    """Base class for all client core errors."""


class RequestError(AnyApiError):
    """A call to the backend did not produce a successful response.

    ``history`` holds the RequestAttempt records of the failed call, one per
    attempt, when the error was raised by RequestExecutor.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        attempts: int = 1,
        status: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.attempts = attempts
        self.status = status
        self.body = body
        self.history: list = []


class RequestTimeout(RequestError):
    """The call exceeded its deadline. Never retried."""


class TransientTransportError(RequestError):
    """Connection failure, 5xx or 429. Retried up to the policy limit."""


class ClientError(RequestError):
    """4xx response other than 429. Never retried."""


class RequestFailed(RequestError):
    """Retries were exhausted; wraps the last transient error."""

    def __init__(self, last_error: RequestError):
        super().__init__(
            str(last_error),
            endpoint=last_error.endpoint,
            attempts=last_error.attempts,
            status=last_error.status,
            body=last_error.body,
        )
        self.last_error = last_error
        self.history = list(last_error.history)
        self.__cause__ = last_error


class CryptoUnavailable(AnyApiError):
    """The secure negotiation path cannot run on this interpreter."""


class AuthenticationRejected(AnyApiError):
    """The backend explicitly rejected the vault password."""

    def __init__(self, message: str = "Invalid password", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class VaultStateMismatch(AnyApiError):
    """Local state believed the vault unlocked while the backend reports it locked.

    Internal only: logged and recovered by invalidating the session, never
    surfaced to the user.
    """
