"""Transport layer: retry policy and the request executor."""

from .executor import RequestExecutor, RequestOptions
from .policy import AttemptOutcome, RequestAttempt, RetryPolicy, classify_status

__all__ = [
    'RequestExecutor',
    'RequestOptions',
    'AttemptOutcome',
    'RequestAttempt',
    'RetryPolicy',
    'classify_status',
]
