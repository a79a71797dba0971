"""
Async Utilities for backend API calls.

A per-backend circuit breaker: once a backend has failed often enough, further
calls are rejected without touching the network until a cool-down passes, so a
dead backend costs a search nothing but its failure entry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any

from .exceptions import ErrorContext, RateLimitError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure gate wrapped around every request of one backend.

    ``closed`` lets calls through and counts failures (a success pays one
    back). Reaching ``failure_threshold`` switches to ``open``, which rejects
    with RateLimitError until ``recovery_timeout`` elapses. The next entry then
    moves to ``half_open``, where at most ``half_open_max_calls`` trial calls run;
    a successful trial call closes the circuit again.

    A cancelled call (search timeout, caller gone) says nothing about the
    backend and is not counted.

    Usage:
        breaker = CircuitBreaker(source="J-STAGE")
        async with breaker:
            response = await client.get(url)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        source: str | None = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.source = source

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        """True while rejecting calls, i.e. open and still cooling down."""
        if self._state != CircuitState.OPEN:
            return False
        if self._last_failure_time is None:
            return True
        return time.monotonic() - self._last_failure_time <= self.recovery_timeout

    def _reject(self, message: str, retry_after: float) -> RateLimitError:
        label = f"{self.source}: " if self.source else ""
        return RateLimitError(
            f"{label}{message}",
            retry_after=retry_after,
            context=ErrorContext(source=self.source),
        )

    async def __aenter__(self) -> CircuitBreaker:
        async with self._lock:
            if self.is_open:
                raise self._reject("Circuit breaker is open", self.recovery_timeout)

            if self._state == CircuitState.OPEN:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    raise self._reject(
                        "Circuit breaker is half-open (trial call limit reached)",
                        self.recovery_timeout / 2,
                    )
                self._half_open_calls += 1

        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if isinstance(exc_val, asyncio.CancelledError):
            return

        async with self._lock:
            if exc_val is None:
                self._record_success()
            else:
                self._record_failure()

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            logger.info(f"{self.source or 'Backend'} recovered, circuit closed")
        else:
            self._failure_count = max(0, self._failure_count - 1)

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                f"{self.source or 'Backend'} circuit opened after {self._failure_count} failures, "
                f"rejecting calls for {self.recovery_timeout:g}s"
            )
