"""Portfolio monitor exception hierarchy."""

from datetime import UTC, datetime
from typing import Any


class ApplicationError(Exception):
    """Base exception for all portfolio monitor errors.

    Always carries a machine-readable ``code`` and structured ``details``.
    """

    code = "GENERIC_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code
        self.timestamp = datetime.now(UTC).isoformat()

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ValidationError(ApplicationError):
    """Bad input or configuration value."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None) -> None:
        super().__init__(message, {"field": field, "value": value})
        self.field = field
        self.value = value


class FileSystemError(ApplicationError):
    """Path or permission failure."""

    code = "FILESYSTEM_ERROR"

    def __init__(self, message: str, path: str | None = None, operation: str | None = None) -> None:
        super().__init__(message, {"path": path, "operation": operation})
        self.path = path
        self.operation = operation


class GitError(ApplicationError):
    """Error in git operations."""

    code = "GIT_ERROR"

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
        cwd: str | None = None,
    ) -> None:
        super().__init__(message, {"command": command, "exit_code": exit_code, "cwd": cwd})
        self.command = command
        self.exit_code = exit_code
        self.cwd = cwd


class NetworkError(ApplicationError):
    """Issue-tracker or other remote endpoint unreachable."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, url: str | None = None, method: str | None = None) -> None:
        super().__init__(message, {"url": url, "method": method})
        self.url = url
        self.method = method


class ConfigurationError(ApplicationError):
    """Configuration schema, parse, or merge failure."""

    code = "CONFIGURATION_ERROR"

    def __init__(
        self, message: str, config_key: str | None = None, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message, {"config_key": config_key, **(details or {})})
        self.config_key = config_key


class CircuitBreakerOpenError(ApplicationError):
    """Operation refused because its circuit breaker is open."""

    code = "CIRCUIT_BREAKER_OPEN"

    def __init__(self, operation: str, breaker_key: str) -> None:
        super().__init__(
            f"Circuit breaker is open for operation: {operation}",
            {"operation": operation, "circuit_breaker_key": breaker_key},
        )
        self.operation = operation
        self.breaker_key = breaker_key


class WorkerError(ApplicationError):
    """Project worker could not be started or controlled."""

    code = "WORKER_ERROR"

    def __init__(self, message: str, project: str | None = None) -> None:
        super().__init__(message, {"project": project})
        self.project = project
