"""Windowed circuit breaker keyed by operation identifier."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from portfolio_monitor.constants import DEFAULT_BREAKER_THRESHOLD, DEFAULT_BREAKER_WINDOW_SECONDS
from portfolio_monitor.logging import get_logger

logger = get_logger("circuit_breaker")


@dataclass
class BreakerState:
    """Error count for one key since ``window_start``."""

    key: str
    count: int = 0
    window_start: float = 0.0


class CircuitBreaker:
    """Counts errors per key inside a time window.

    A key is open once ``failure_threshold`` errors were recorded inside the
    current window. The window and count reset lazily on the next read or
    write after ``window_seconds`` have elapsed; there is no half-open trial write.
    Success does not close a key, only :meth:`reset` or window expiry do.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_BREAKER_THRESHOLD,
        window_seconds: float = DEFAULT_BREAKER_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._window_seconds = window_seconds
        self._clock = clock
        self._states: dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    def _state(self, key: str) -> BreakerState:
        """Get or create the state for a key, expiring a stale window."""
        now = self._clock()
        state = self._states.get(key)
        if state is None:
            state = BreakerState(key=key, window_start=now)
            self._states[key] = state
        elif now - state.window_start > self._window_seconds:
            if state.count:
                logger.debug(f"Circuit window expired for {key}, clearing {state.count} errors")
            state.count = 0
            state.window_start = now
        return state

    def record_error(self, key: str) -> int:
        """Record one failure for a key.

        Returns:
            Error count in the current window after recording
        """
        with self._lock:
            state = self._state(key)
            state.count += 1
            if state.count == self._failure_threshold:
                logger.warning(f"Circuit breaker opened for {key} ({state.count} errors)")
            return state.count

    def is_open(self, key: str) -> bool:
        """Whether the key has reached the threshold in the current window."""
        with self._lock:
            return self._state(key).count >= self._failure_threshold

    def error_count(self, key: str) -> int:
        with self._lock:
            return self._state(key).count

    def reset(self, key: str) -> None:
        """Close a key explicitly."""
        with self._lock:
            if key in self._states:
                self._states[key] = BreakerState(key=key, window_start=self._clock())
                logger.info(f"Circuit breaker reset for {key}")

    def get_state(self, key: str) -> BreakerState:
        """Return a copy of the current state for a key."""
        with self._lock:
            state = self._state(key)
            return BreakerState(key=state.key, count=state.count, window_start=state.window_start)

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all known keys."""
        with self._lock:
            return {
                key: {
                    "count": self._state(key).count,
                    "open": self._state(key).count >= self._failure_threshold,
                    "window_start": self._state(key).window_start,
                }
                for key in list(self._states)
            }
