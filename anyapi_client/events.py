"""Process-wide notifications with an explicit subscription interface."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Optional, Union

from .logging import get_logger

logger = get_logger("events")


class Event(str, Enum):
    """Notifications published by the client core."""
    UNLOCKED = "unlocked"
    UNLOCK_SKIPPED = "unlock-skipped"
    AUTH_REQUIRED = "auth-required"
    STATUS_CHANGED = "status-changed"
    CONNECTION_CHANGED = "connection-changed"


Listener = Callable[[Event, dict], Union[None, Awaitable[None]]]


class Notifier:
    """Dispatches events to registered listeners.

    Listeners may be plain functions or coroutine functions. A listener that
    raises is logged and skipped; publishers never depend on listener behavior.
    """

    def __init__(self):
        self._listeners: dict[Event, list[Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event: Event, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe():
            self.unsubscribe(event, listener)

        return unsubscribe

    def unsubscribe(self, event: Event, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: Event) -> int:
        return len(self._listeners.get(event, []))

    def publish(self, event: Event, payload: Optional[dict] = None) -> None:
        """Deliver an event to every listener registered for it."""
        payload = payload or {}
        logger.debug(f"Publishing {event.value} to {self.listener_count(event)} listener(s)")

        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(event, payload)
            except Exception as e:
                logger.error(f"Listener for {event.value} failed: {type(e).__name__}: {e}")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(f"Async listener crashed: {type(exc).__name__}: {exc}")

    async def wait_for(self, *events: Event) -> tuple[Event, dict]:
        """Wait until one of ``events`` is published and return it."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def on_event(event: Event, payload: dict):
            if not future.done():
                future.set_result((event, payload))

        unsubscribers = [self.subscribe(event, on_event) for event in events]
        try:
            return await future
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

    async def drain(self) -> None:
        """Wait for async listeners that are still running."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
