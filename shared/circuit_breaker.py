"""
Circuit breaker for calls to infrastructure that may disappear (Redis).

After ``failure_threshold`` consecutive failures the breaker opens and every
call is rejected with ``CircuitBreakerOpenException`` until
``recovery_timeout`` seconds have passed. The next call is then let through as
a probe and other calls keep being rejected until it finishes. Success closes
the breaker, failure re-opens it for another period.
"""

import time
from enum import Enum
from typing import Dict, Any, Callable, Awaitable

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling through while the breaker is open."""


class CircuitBreaker:
    """Consecutive-failure circuit breaker for async callables."""

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.logger = get_logger(f"listings.circuit_breaker.{name}")
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    def is_open(self) -> bool:
        return self._state == CircuitBreakerState.OPEN

    def _transition(self, new_state: CircuitBreakerState):
        if new_state != self._state:
            self.logger.info(
                "Circuit breaker state change",
                previous=self._state.value,
                state=new_state.value,
                failure_count=self._failure_count
            )
            self._state = new_state

    def _allow_call(self) -> bool:
        if self._state == CircuitBreakerState.CLOSED:
            return True
        if self._state == CircuitBreakerState.OPEN:
            if self._clock() - self._opened_at < self.recovery_timeout:
                return False
            self._transition(CircuitBreakerState.HALF_OPEN)
        # Half open: one trial call at a time
        if self._probe_in_flight:
            return False
        self._probe_in_flight = True
        return True

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)`` unless the breaker is open."""
        if not self._allow_call():
            raise CircuitBreakerOpenException(f"Circuit breaker '{self.name}' is open")

        probing = self._state == CircuitBreakerState.HALF_OPEN
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        finally:
            if probing:
                self._probe_in_flight = False

        self._on_success()
        return result

    def _on_success(self):
        self._failure_count = 0
        self._transition(CircuitBreakerState.CLOSED)

    def _on_failure(self):
        self._failure_count += 1
        probe_failed = self._state == CircuitBreakerState.HALF_OPEN
        if probe_failed or self._failure_count >= self.failure_threshold:
            self._opened_at = self._clock()
            if not probe_failed:
                self.logger.warning(
                    "Circuit breaker opened",
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold
                )
            self._transition(CircuitBreakerState.OPEN)

    def get_state(self) -> Dict[str, Any]:
        """Snapshot for stats endpoints."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "opened_at": self._opened_at,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout
        }
