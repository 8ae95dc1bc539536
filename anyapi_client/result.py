"""Tagged results and an ordered strategy pipeline.

A strategy reports one of three outcomes instead of raising:

- ``ok``: it produced a value, stop here
- ``fallback``: it could not run or was refused, try the next strategy
- ``err``: it failed definitively, stop here and report the error
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from .logging import get_logger

logger = get_logger("session")

T = TypeVar("T")


class Outcome(str, Enum):
    OK = "ok"
    FALLBACK = "fallback"
    ERR = "err"


@dataclass(frozen=True)
class Result(Generic[T]):
    outcome: Outcome
    value: Optional[T] = None
    error: Optional[Exception] = None
    strategy: Optional[str] = None

    @classmethod
    def ok(cls, value: T, strategy: Optional[str] = None) -> "Result[T]":
        return cls(Outcome.OK, value=value, strategy=strategy)

    @classmethod
    def fallback(cls, error: Exception, strategy: Optional[str] = None) -> "Result[T]":
        return cls(Outcome.FALLBACK, error=error, strategy=strategy)

    @classmethod
    def err(cls, error: Exception, strategy: Optional[str] = None) -> "Result[T]":
        return cls(Outcome.ERR, error=error, strategy=strategy)

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.outcome is Outcome.OK:
            return self.value
        raise self.error


Strategy = Callable[[], Awaitable[Result[T]]]


async def run_strategies(strategies: Sequence[tuple[str, Strategy]]) -> Result[T]:
    """Try each named strategy in order until one does not ask for fallback.

    If every strategy falls back, the last fallback is reported as an error.
    """
    if not strategies:
        raise ValueError("run_strategies needs at least one strategy")

    last: Optional[Result[T]] = None
    for name, strategy in strategies:
        result = await strategy()
        if result.outcome is not Outcome.FALLBACK:
            return Result(result.outcome, result.value, result.error, name)
        logger.warning(f"Strategy '{name}' fell back: {result.error}")
        last = result

    return Result.err(last.error, strategy=strategies[-1][0])
