"""Tests for the portfolio monitor exception hierarchy."""

import pytest

from portfolio_monitor.exceptions import (
    ApplicationError,
    CircuitBreakerOpenError,
    ConfigurationError,
    FileSystemError,
    GitError,
    NetworkError,
    ValidationError,
    WorkerError,
)


class TestApplicationError:
    """Tests for the base error."""

    def test_defaults(self):
        error = ApplicationError("Something failed")
        assert error.message == "Something failed"
        assert error.code == "GENERIC_ERROR"
        assert error.details == {}
        assert str(error) == "Something failed"

    def test_code_override_and_details(self):
        error = ApplicationError("Wrapped", details={"operation": "scan"}, code="WRAPPED_ERROR")
        assert error.code == "WRAPPED_ERROR"
        assert "operation" in str(error)

    def test_to_dict(self):
        data = GitError("fetch failed", command="git fetch", exit_code=128, cwd="/repo").to_dict()
        assert data["name"] == "GitError"
        assert data["code"] == "GIT_ERROR"
        assert data["details"] == {"command": "git fetch", "exit_code": 128, "cwd": "/repo"}
        assert data["timestamp"]


class TestSubclasses:
    """Every subclass carries its own code and is an ApplicationError."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (ValidationError("bad", field="type", value="x"), "VALIDATION_ERROR"),
            (FileSystemError("denied", path="/data", operation="write"), "FILESYSTEM_ERROR"),
            (GitError("failed"), "GIT_ERROR"),
            (NetworkError("down", url="https://api.github.com", method="GET"), "NETWORK_ERROR"),
            (ConfigurationError("invalid", config_key="monitoring.max_workers"), "CONFIGURATION_ERROR"),
            (CircuitBreakerOpenError("git_fetch", "git_/repo"), "CIRCUIT_BREAKER_OPEN"),
            (WorkerError("cannot start", project="alpha"), "WORKER_ERROR"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, ApplicationError)
        assert error.code == code

    def test_breaker_error_message_names_operation(self):
        error = CircuitBreakerOpenError("git_fetch", "git_/repo")
        assert "git_fetch" in error.message
        assert error.details["circuit_breaker_key"] == "git_/repo"

    def test_configuration_error_merges_details(self):
        error = ConfigurationError("invalid", config_key="logging.level", details={"errors": 2})
        assert error.details == {"config_key": "logging.level", "errors": 2}
