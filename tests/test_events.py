"""
Unit tests for the notifier and the strategy pipeline
"""
import asyncio

import pytest

from anyapi_client.events import Event, Notifier
from anyapi_client.result import Outcome, Result, run_strategies


class TestNotifier:
    """Test cases for Notifier"""

    def test_publish_to_subscribers(self):
        notifier = Notifier()
        received = []
        notifier.subscribe(Event.UNLOCKED, lambda event, payload: received.append((event, payload)))

        notifier.publish(Event.UNLOCKED, {"path": "secure"})

        assert received == [(Event.UNLOCKED, {"path": "secure"})]

    def test_events_are_isolated(self):
        notifier = Notifier()
        received = []
        notifier.subscribe(Event.UNLOCKED, lambda event, payload: received.append(event))

        notifier.publish(Event.STATUS_CHANGED)

        assert received == []

    def test_unsubscribe(self):
        notifier = Notifier()
        received = []
        unsubscribe = notifier.subscribe(Event.AUTH_REQUIRED, lambda e, p: received.append(p))

        unsubscribe()
        notifier.publish(Event.AUTH_REQUIRED, {"reason": "x"})

        assert received == []
        assert notifier.listener_count(Event.AUTH_REQUIRED) == 0

    def test_failing_listener_does_not_stop_others(self):
        notifier = Notifier()
        received = []

        def broken(event, payload):
            raise RuntimeError("listener bug")

        notifier.subscribe(Event.UNLOCK_SKIPPED, broken)
        notifier.subscribe(Event.UNLOCK_SKIPPED, lambda e, p: received.append(p))

        notifier.publish(Event.UNLOCK_SKIPPED, {"attempts": 1})

        assert received == [{"attempts": 1}]

    @pytest.mark.asyncio
    async def test_async_listeners_are_drained(self):
        notifier = Notifier()
        received = []

        async def slow(event, payload):
            await asyncio.sleep(0.01)
            received.append(payload)

        async def broken(event, payload):
            raise RuntimeError("async listener bug")

        notifier.subscribe(Event.CONNECTION_CHANGED, slow)
        notifier.subscribe(Event.CONNECTION_CHANGED, broken)
        notifier.publish(Event.CONNECTION_CHANGED, {"connected": True})
        await notifier.drain()

        assert received == [{"connected": True}]

    @pytest.mark.asyncio
    async def test_wait_for(self):
        notifier = Notifier()

        async def publish_later():
            await asyncio.sleep(0.01)
            notifier.publish(Event.UNLOCK_SKIPPED, {"attempts": 0})

        asyncio.ensure_future(publish_later())
        event, payload = await notifier.wait_for(Event.UNLOCKED, Event.UNLOCK_SKIPPED)

        assert event is Event.UNLOCK_SKIPPED
        assert payload == {"attempts": 0}
        assert notifier.listener_count(Event.UNLOCKED) == 0


class TestRunStrategies:
    """Test cases for the ordered strategy pipeline"""

    @staticmethod
    def strategy(result, calls, name):
        async def run():
            calls.append(name)
            return result
        return run

    @pytest.mark.asyncio
    async def test_first_ok_wins(self):
        calls = []
        result = await run_strategies([
            ("first", self.strategy(Result.ok(1), calls, "first")),
            ("second", self.strategy(Result.ok(2), calls, "second")),
        ])

        assert result.value == 1
        assert result.strategy == "first"
        assert calls == ["first"]

    @pytest.mark.asyncio
    async def test_fallback_moves_on(self):
        calls = []
        result = await run_strategies([
            ("first", self.strategy(Result.fallback(RuntimeError("no")), calls, "first")),
            ("second", self.strategy(Result.ok(2), calls, "second")),
        ])

        assert result.is_ok
        assert result.strategy == "second"
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_err_stops_the_pipeline(self):
        calls = []
        error = ValueError("definitive")
        result = await run_strategies([
            ("first", self.strategy(Result.err(error), calls, "first")),
            ("second", self.strategy(Result.ok(2), calls, "second")),
        ])

        assert result.outcome is Outcome.ERR
        assert result.error is error
        assert calls == ["first"]

    @pytest.mark.asyncio
    async def test_all_fallbacks_become_err(self):
        last = RuntimeError("second refused")
        result = await run_strategies([
            ("first", self.strategy(Result.fallback(RuntimeError("first refused")), [], "first")),
            ("second", self.strategy(Result.fallback(last), [], "second")),
        ])

        assert result.outcome is Outcome.ERR
        assert result.error is last
        assert result.strategy == "second"

    @pytest.mark.asyncio
    async def test_empty_pipeline(self):
        with pytest.raises(ValueError):
            await run_strategies([])

    def test_unwrap(self):
        assert Result.ok(5).unwrap() == 5
        with pytest.raises(KeyError):
            Result.err(KeyError("missing")).unwrap()
