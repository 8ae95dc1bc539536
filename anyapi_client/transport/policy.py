"""Retry policy and per-attempt bookkeeping."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import RequestError


class AttemptOutcome(str, Enum):
    """Classification of a single attempt."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


def classify_status(status: int) -> AttemptOutcome:
    """Classify an HTTP status code.

    2xx is success. 429 and 5xx are transient. Every other failure is a
    client-side correctness error that a retry will not fix.
    """
    if 200 <= status < 300:
        return AttemptOutcome.SUCCESS
    if status == 429 or status >= 500:
        return AttemptOutcome.RETRYABLE
    return AttemptOutcome.TERMINAL


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff."""
    max_retries: int = 3
    base_delay: float = 1.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt < self.max_retries


@dataclass
class RequestAttempt:
    """Record of one attempt at a call. Transient, never persisted."""
    number: int
    timeout: float
    elapsed: float = 0.0
    outcome: Optional[AttemptOutcome] = None
    status: Optional[int] = None
    error: Optional[RequestError] = None
