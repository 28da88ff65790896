"""
Tests for the circuit breaker guarding the remote backend.
"""
import pytest

from tenant_store.config import ResilienceConfig
from tenant_store.resilience import CircuitBreaker


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    config = ResilienceConfig(failure_threshold=3, recovery_timeout=10.0, half_open_successes=2)
    return CircuitBreaker(config, clock=clock)


async def _fail(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        await breaker.on_failure()


class TestCircuitBreaker:
    async def test_starts_closed(self, breaker):
        assert breaker.state == "closed"
        assert await breaker.allow()

    async def test_opens_at_threshold(self, breaker):
        await _fail(breaker, 2)
        assert breaker.state == "closed"
        assert breaker.failure_count == 2

        await breaker.on_failure()
        assert breaker.state == "open"
        assert not await breaker.allow()

    async def test_success_resets_failures(self, breaker):
        await _fail(breaker, 2)
        await breaker.on_success()
        await _fail(breaker, 2)
        assert breaker.state == "closed"

    async def test_half_open_after_recovery_timeout(self, breaker, clock):
        await _fail(breaker, 3)
        clock.advance(9.9)
        assert not await breaker.allow()

        clock.advance(0.1)
        assert await breaker.allow()
        assert breaker.state == "half_open"
        # one trial call at a time
        assert not await breaker.allow()

    async def test_closes_after_half_open_successes(self, breaker, clock):
        await _fail(breaker, 3)
        clock.advance(10)

        assert await breaker.allow()
        await breaker.on_success()
        assert breaker.state == "half_open"

        assert await breaker.allow()
        await breaker.on_success()
        assert breaker.state == "closed"

    async def test_half_open_failure_reopens(self, breaker, clock):
        await _fail(breaker, 3)
        clock.advance(10)
        assert await breaker.allow()

        await breaker.on_failure()
        assert breaker.state == "open"
        assert not await breaker.allow()

    async def test_disabled_always_allows(self, clock):
        breaker = CircuitBreaker(ResilienceConfig(enabled=False, failure_threshold=1), clock=clock)
        await breaker.on_failure()
        assert await breaker.allow()

    async def test_reset(self, breaker):
        await _fail(breaker, 3)
        breaker.reset()
        assert breaker.state == "closed"
        assert breaker.failure_count == 0
        assert await breaker.allow()
