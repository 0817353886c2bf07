"""Pytest configuration and fixtures for portfolio monitor tests."""

import os
import queue
import subprocess
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from portfolio_monitor.circuit_breaker import CircuitBreaker
from portfolio_monitor.config import MonitorConfig
from portfolio_monitor.context import MonitorContext
from portfolio_monitor.persistence import SnapshotStore
from portfolio_monitor.resilience import ErrorHandler

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _run_git(*args: str, cwd: Path | None = None) -> None:
    """Run git command safely without shell=True."""
    subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        check=True,
    )


def init_repo(path: Path, readme: str = "# Test Repo") -> Path:
    """Initialize a git repository with one commit.

    Args:
        path: Directory to turn into a repository (created if missing)
        readme: Content of the committed README.md

    Returns:
        The repository path
    """
    path.mkdir(parents=True, exist_ok=True)
    _run_git("init", "-q", "-b", "main", cwd=path)
    _run_git("config", "user.email", "test@test.com", cwd=path)
    _run_git("config", "user.name", "Test", cwd=path)
    _run_git("config", "commit.gpgsign", "false", cwd=path)

    (path / "README.md").write_text(readme)
    _run_git("add", "-A", cwd=path)
    _run_git("commit", "-q", "-m", "Initial commit", cwd=path)
    return path


@pytest.fixture
def tmp_repo(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary git repository.

    Yields:
        Path to the temporary repository
    """
    orig_dir = os.getcwd()
    repo = init_repo(tmp_path / "repo")
    os.chdir(repo)

    yield repo

    os.chdir(orig_dir)


@pytest.fixture
def portfolio_root(tmp_path: Path) -> Path:
    """Empty directory used as the single project root."""
    root = tmp_path / "portfolio"
    root.mkdir()
    return root


@pytest.fixture
def monitor_config(tmp_path: Path, portfolio_root: Path) -> MonitorConfig:
    """Configuration writing into tmp_path with remote checks disabled.

    Returns:
        MonitorConfig instance
    """
    return MonitorConfig.from_dict(
        {
            "directories": {"include": [str(portfolio_root)]},
            "git": {"enable_remote_check": False},
            "data": {
                "directory": str(tmp_path / "data"),
                "reports_directory": str(tmp_path / "reports"),
            },
            "logging": {"console": False},
            "monitoring": {"restart_pause_seconds": 0, "shutdown_grace_seconds": 1},
        }
    )


@pytest.fixture
def error_handler() -> ErrorHandler:
    """Error handler that never actually sleeps between retries."""
    return ErrorHandler(CircuitBreaker(), sleep=lambda _seconds: None)


@pytest.fixture
def context(monitor_config: MonitorConfig, error_handler: ErrorHandler) -> MonitorContext:
    """Monitor context with a fixed clock and a tmp_path snapshot store."""
    return MonitorContext(
        config=monitor_config,
        error_handler=error_handler,
        store=SnapshotStore(monitor_config.data_dir),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def outbox() -> queue.Queue:
    """Coordinator outbox queue."""
    return queue.Queue()


@pytest.fixture
def fixed_now() -> datetime:
    """The instant returned by the context clock."""
    return FIXED_NOW


@pytest.fixture
def make_repo() -> Callable[..., Path]:
    """Factory creating git repositories with one commit."""
    return init_repo
