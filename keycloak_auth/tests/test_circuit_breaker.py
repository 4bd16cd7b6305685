"""
Unit tests for the shared circuit breaker.
"""

from unittest.mock import AsyncMock

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpen


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def now(self):
        return [0.0]

    @pytest.fixture
    def breaker(self, now):
        return CircuitBreaker(failure_threshold=3, recovery_timeout=10.0, name="test", clock=lambda: now[0])

    @pytest.mark.asyncio
    async def test_success_passes_through(self, breaker):
        func = AsyncMock(return_value="ok")

        assert await breaker.call(func, 1, key="value") == "ok"
        func.assert_awaited_once_with(1, key="value")
        assert breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        func = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(func)

        with pytest.raises(CircuitBreakerOpen):
            await breaker.call(func)

        assert breaker.is_open()
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        await breaker.call(AsyncMock(return_value=None))

        assert breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_trial_failure_reopens(self, breaker, now):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        now[0] = 10.0
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpen):
            await breaker.call(failing)

    @pytest.mark.asyncio
    async def test_half_open_trial_success_closes(self, breaker, now):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        now[0] = 15.0
        await breaker.call(AsyncMock(return_value="ok"))

        assert not breaker.is_open()
        assert breaker.get_state()["state"] == "closed"
