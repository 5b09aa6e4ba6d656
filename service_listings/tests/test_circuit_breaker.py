"""
Unit tests for the circuit breaker guarding Redis.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=3, recovery_timeout=30.0, name="redis", clock=clock)

    @pytest.mark.asyncio
    async def test_success_passes_through(self, breaker):
        func = AsyncMock(return_value="PONG")

        assert await breaker.call(func, "arg") == "PONG"
        func.assert_awaited_once_with("arg")
        assert breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        func = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(func)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(func)
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        ok = AsyncMock(return_value=True)

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)
        await breaker.call(ok)
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_state()["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_half_open_recovery(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        clock.now += 31
        assert await breaker.call(AsyncMock(return_value="PONG")) == "PONG"
        assert breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        clock.now += 31
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)

    @pytest.mark.asyncio
    async def test_half_open_admits_a_single_trial_call(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)
        clock.now += 31

        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_ping():
            started.set()
            await release.wait()
            return "PONG"

        trial = asyncio.create_task(breaker.call(slow_ping))
        await started.wait()

        concurrent = AsyncMock(return_value="PONG")
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(concurrent)
        concurrent.assert_not_awaited()
        assert breaker.state == CircuitBreakerState.HALF_OPEN

        release.set()
        assert await trial == "PONG"
        assert breaker.state == CircuitBreakerState.CLOSED
        assert await breaker.call(concurrent) == "PONG"

    @pytest.mark.asyncio
    async def test_failed_trial_call_allows_a_later_trial(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        clock.now += 31
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

        clock.now += 31
        assert await breaker.call(AsyncMock(return_value="PONG")) == "PONG"
        assert breaker.state == CircuitBreakerState.CLOSED

    def test_get_state(self, breaker):
        state = breaker.get_state()

        assert state["name"] == "redis"
        assert state["state"] == "closed"
        assert state["failure_threshold"] == 3
        assert state["recovery_timeout"] == 30.0
