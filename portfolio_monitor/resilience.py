"""Retry, circuit breaking, error wrapping and graceful degradation.

All fallible units of work in the monitor can be routed through
:meth:`ErrorHandler.safe_execute`. It checks the operation's breaker key,
retries with linearly increasing delay, records every failure against the
breaker and finally wraps the last error into the typed taxonomy from
:mod:`portfolio_monitor.exceptions`.

Usage:
    handler = ErrorHandler()
    value = handler.safe_execute(fetch, OperationContext("fetch", max_retries=2))
"""

from __future__ import annotations

import subprocess
import threading
import time
import urllib.error
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from portfolio_monitor.circuit_breaker import CircuitBreaker
from portfolio_monitor.exceptions import (
    ApplicationError,
    CircuitBreakerOpenError,
    FileSystemError,
    GitError,
    NetworkError,
    ValidationError,
)
from portfolio_monitor.logging import get_logger
from portfolio_monitor.retry_backoff import calculate_retry_delay

logger = get_logger("resilience")

T = TypeVar("T")

CACHE_TTL_SECONDS = 5 * 60

STRATEGY_FALLBACK = "fallback"
STRATEGY_CACHE = "cache"
STRATEGY_MOCK = "mock"


@dataclass
class OperationContext:
    """How one operation is retried, keyed and degraded."""

    operation: str = "unknown_operation"
    max_retries: int = 0
    retry_delay: float = 1.0
    fallback: Callable[[], Any] | None = None
    breaker_key: str | None = None
    log_context: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.breaker_key or self.operation


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float


class ErrorHandler:
    """Shared resilience policy for workers and the coordinator."""

    def __init__(
        self,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.breaker = breaker or CircuitBreaker()
        self._sleep = sleep
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._cache_lock = threading.Lock()

    def safe_execute(self, operation: Callable[[], T], context: OperationContext | None = None) -> T:
        """Run an operation under the breaker with retries.

        Args:
            operation: Zero-argument callable doing the work
            context: Retry, breaker and fallback settings

        Returns:
            The operation's result, or the fallback's result

        Raises:
            CircuitBreakerOpenError: If the breaker is open and there is no fallback
            ApplicationError: The wrapped last error once retries are exhausted
        """
        ctx = context or OperationContext()
        key = ctx.key

        if self.breaker.is_open(key):
            if ctx.fallback is not None:
                logger.warning(
                    f"Circuit breaker open, using fallback for {ctx.operation}",
                    extra={"operation": ctx.operation},
                )
                return ctx.fallback()  # type: ignore[no-any-return]
            raise CircuitBreakerOpenError(ctx.operation, key)

        last_error: Exception | None = None
        attempts = ctx.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                result = operation()
            except Exception as e:
                last_error = e
                self.breaker.record_error(key)
                will_retry = attempt < attempts
                logger.error(
                    f"Operation failed (attempt {attempt}/{attempts}): {ctx.operation}: {e}",
                    extra={"operation": ctx.operation, "attempt": attempt},
                )
                if will_retry:
                    self._sleep(calculate_retry_delay(attempt, ctx.retry_delay))
                continue

            if attempt > 1:
                logger.info(
                    f"Operation succeeded after {attempt - 1} retries: {ctx.operation}",
                    extra={"operation": ctx.operation, "attempt": attempt},
                )
            return result

        assert last_error is not None
        final_error = wrap_error(last_error, ctx.operation, ctx.log_context)

        if ctx.fallback is not None:
            logger.warning(f"All retries exhausted for {ctx.operation}, using fallback")
            try:
                return ctx.fallback()  # type: ignore[no-any-return]
            except Exception as fallback_error:
                logger.error(f"Fallback also failed for {ctx.operation}: {fallback_error}")
                raise final_error from fallback_error

        if final_error is last_error:
            raise final_error
        raise final_error from last_error

    # ------------------------------------------------------------------
    # Typed wrappers
    # ------------------------------------------------------------------

    def safe_file_operation(self, operation: Callable[[], T], file_path: str, operation_type: str = "unknown") -> T:
        """Run a filesystem operation with 2 retries 0.5s apart."""
        return self.safe_execute(
            operation,
            OperationContext(
                operation=f"file_{operation_type}",
                max_retries=2,
                retry_delay=0.5,
                breaker_key=f"filesystem_{operation_type}",
                log_context={"path": file_path, "operation_type": operation_type},
            ),
        )

    def safe_git_operation(self, operation: Callable[[], T], command: str, cwd: str) -> T:
        """Run a git command with a single retry, keyed per repository."""
        return self.safe_execute(
            operation,
            OperationContext(
                operation=f"git_{command.split(' ')[0]}",
                max_retries=1,
                retry_delay=1.0,
                breaker_key=f"git_{cwd}",
                log_context={"command": command, "cwd": cwd},
            ),
        )

    def safe_network_operation(self, operation: Callable[[], T], url: str, method: str = "GET") -> T:
        """Run a network request with 3 retries, keyed per host."""
        host = urlparse(url).hostname or url
        return self.safe_execute(
            operation,
            OperationContext(
                operation=f"network_{method.lower()}",
                max_retries=3,
                retry_delay=2.0,
                breaker_key=f"network_{host}",
                log_context={"url": url, "method": method},
            ),
        )

    # ------------------------------------------------------------------
    # Graceful degradation
    # ------------------------------------------------------------------

    def graceful(
        self,
        primary: Callable[..., T],
        fallback: Callable[..., T] | None = None,
        strategy: str = STRATEGY_FALLBACK,
        cache_key: str | None = None,
        mock_data: Any = None,
    ) -> Callable[..., T]:
        """Wrap a callable so failures degrade instead of raising.

        Args:
            primary: The preferred operation
            fallback: Used by the ``fallback`` strategy
            strategy: One of ``fallback``, ``cache`` or ``mock``
            cache_key: Key under which successful results are cached
            mock_data: Value (or callable) returned by the ``mock`` strategy

        Returns:
            Wrapped callable; re-raises the primary error when no
            degradation applies
        """

        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                result = primary(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Primary operation failed, attempting graceful degradation ({strategy}): {e}")
                if strategy == STRATEGY_FALLBACK and fallback is not None:
                    return fallback(*args, **kwargs)
                if strategy == STRATEGY_CACHE and cache_key:
                    cached = self.get_cache(cache_key)
                    if cached is not None:
                        logger.info(f"Using cached data for graceful degradation: {cache_key}")
                        return cached  # type: ignore[no-any-return]
                if strategy == STRATEGY_MOCK and mock_data is not None:
                    logger.info("Using mock data for graceful degradation")
                    if callable(mock_data):
                        return mock_data(*args, **kwargs)  # type: ignore[no-any-return]
                    return mock_data  # type: ignore[no-any-return]
                raise

            if strategy == STRATEGY_CACHE and cache_key:
                self.set_cache(cache_key, result)
            return result

        return wrapper

    def set_cache(self, key: str, value: Any) -> None:
        with self._cache_lock:
            self._cache[key] = _CacheEntry(value=value, stored_at=self._clock())

    def get_cache(self, key: str) -> Any:
        """Return a cached value younger than the TTL, else None."""
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > CACHE_TTL_SECONDS:
                del self._cache[key]
                return None
            return entry.value

    def get_status(self) -> dict[str, Any]:
        return {"circuit_breakers": self.breaker.get_status(), "cached_keys": sorted(self._cache)}


def wrap_error(error: Exception, operation: str, context: dict[str, Any] | None = None) -> ApplicationError:
    """Map an arbitrary exception onto the typed taxonomy.

    ApplicationError instances pass through unchanged.
    """
    if isinstance(error, ApplicationError):
        return error

    ctx = context or {}
    message = f"Operation '{operation}' failed: {error}"

    # URLError subclasses OSError, so network errors are checked first
    if isinstance(error, urllib.error.URLError | ConnectionError | TimeoutError):
        return NetworkError(message, url=ctx.get("url"), method=ctx.get("method"))

    if isinstance(error, subprocess.CalledProcessError | subprocess.TimeoutExpired):
        return GitError(message, command=ctx.get("command"), cwd=ctx.get("cwd"))

    if isinstance(error, OSError):
        return FileSystemError(message, path=ctx.get("path") or getattr(error, "filename", None), operation=operation)

    if "git" in str(error).lower():
        return GitError(message, command=ctx.get("command"), cwd=ctx.get("cwd"))

    if isinstance(error, PydanticValidationError):
        return ValidationError(message, field=ctx.get("field"), value=ctx.get("value"))

    return ApplicationError(
        message,
        details={"operation": operation, "original_error": type(error).__name__},
        code="WRAPPED_ERROR",
    )
