"""
Unit tests for the connection monitor
"""
import asyncio
from unittest.mock import Mock

import httpx
import pytest

from anyapi_client.events import Event
from anyapi_client.monitor import HEALTH_ENDPOINT, ConnectionMonitor


@pytest.fixture
def coordinator_mock():
    return Mock()


@pytest.fixture
def monitor(executor, notifier, coordinator_mock):
    return ConnectionMonitor(executor, notifier, coordinator=coordinator_mock, interval=0.01)


class TestCheck:
    """Test cases for ConnectionMonitor.check"""

    @pytest.mark.asyncio
    async def test_healthy(self, monitor, backend):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))

        assert await monitor.check()
        assert monitor.connected is True

    @pytest.mark.asyncio
    async def test_success_false_is_unhealthy(self, monitor, backend):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": False}))

        assert not await monitor.check()

    @pytest.mark.asyncio
    async def test_errors_are_unhealthy(self, monitor, backend):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(503, text="down"))

        assert not await monitor.check()
        assert monitor.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_health_check_has_no_session_headers(self, executor, notifier, backend):
        executor.set_auth_provider(lambda: {"Authorization": "Bearer abc"})
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))

        await ConnectionMonitor(executor, notifier).check()

        assert "Authorization" not in backend.requests[0].headers


class TestTransitions:
    """Test cases for connectivity notifications"""

    @pytest.mark.asyncio
    async def test_transitions_are_published_once(self, monitor, backend, notifier):
        changes = []
        notifier.subscribe(Event.CONNECTION_CHANGED, lambda event, payload: changes.append(payload))

        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))
        await monitor.check()
        await monitor.check()
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(500, text="boom"))
        await monitor.check()
        await monitor.check()

        assert changes == [{"connected": True}, {"connected": False}]
        assert monitor.consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_reconnect_schedules_vault_refresh(self, monitor, backend, coordinator_mock):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(500, text="boom"))
        await monitor.check()
        coordinator_mock.schedule_refresh.assert_not_called()

        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))
        await monitor.check()

        coordinator_mock.schedule_refresh.assert_called_once()
        assert monitor.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_first_success_does_not_refresh(self, monitor, backend, coordinator_mock):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))
        await monitor.check()

        coordinator_mock.schedule_refresh.assert_not_called()


class TestRun:
    """Test cases for the polling loop"""

    @pytest.mark.asyncio
    async def test_run_until_shutdown(self, monitor, backend):
        backend.on("GET", HEALTH_ENDPOINT, httpx.Response(200, json={"success": True}))
        shutdown_event = asyncio.Event()

        task = asyncio.ensure_future(monitor.run(shutdown_event))
        await asyncio.sleep(0.05)
        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert backend.count("GET", HEALTH_ENDPOINT) >= 2

    @pytest.mark.asyncio
    async def test_run_exits_immediately_when_already_shut_down(self, monitor, backend):
        shutdown_event = asyncio.Event()
        shutdown_event.set()

        await monitor.run(shutdown_event)

        assert backend.requests == []
