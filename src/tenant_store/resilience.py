"""
Resilience primitives (circuit breaker guarding the remote backend).
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Literal

from .config import ResilienceConfig

BreakerState = Literal["closed", "open", "half_open"]


class CircuitBreaker:
    """
    Counts transient remote failures and short-circuits to the fallback
    store once ``failure_threshold`` consecutive failures are seen.

    After ``recovery_timeout`` seconds one trial request is let through
    (half-open); ``half_open_successes`` successful trial requests close it again.
    """

    def __init__(
        self,
        config: ResilienceConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ResilienceConfig()
        self._clock = clock
        self._state: BreakerState = "closed"
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = 0.0
        self._half_open_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def reset(self) -> None:
        self._state = "closed"
        self._failure_count = 0
        self._success_count = 0
        self._half_open_in_flight = False

    async def allow(self) -> bool:
        if not self.config.enabled:
            return True
        async with self._lock:
            if self._state == "open":
                if self._clock() - self._opened_at >= self.config.recovery_timeout:
                    self._state = "half_open"
                    self._half_open_in_flight = False
                    self._failure_count = 0
                    self._success_count = 0
                else:
                    return False

            if self._state == "half_open":
                if self._half_open_in_flight:
                    return False
                self._half_open_in_flight = True
                return True

            return True

    async def on_success(self) -> None:
        async with self._lock:
            if self._state == "half_open":
                self._success_count += 1
                self._half_open_in_flight = False
                if self._success_count >= self.config.half_open_successes:
                    self._state = "closed"
                    self._failure_count = 0
                    self._success_count = 0
                return

            self._failure_count = 0

    async def on_failure(self) -> None:
        async with self._lock:
            if self._state == "half_open":
                self._trip()
                return

            self._failure_count += 1
            if self._failure_count >= self.config.failure_threshold:
                self._trip()

    def _trip(self) -> None:
        self._state = "open"
        self._opened_at = self._clock()
        self._half_open_in_flight = False
        self._failure_count = 0
        self._success_count = 0


__all__ = ["BreakerState", "CircuitBreaker"]
