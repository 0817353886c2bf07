"""Explicit context object handed to the coordinator and its workers."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from portfolio_monitor.alerts import CriticalNotifier
from portfolio_monitor.circuit_breaker import CircuitBreaker
from portfolio_monitor.config import MonitorConfig
from portfolio_monitor.event_emitter import EventEmitter
from portfolio_monitor.issues import IssueTrackerClient
from portfolio_monitor.persistence import SnapshotStore
from portfolio_monitor.resilience import ErrorHandler
from portfolio_monitor.types import utc_now


@dataclass
class MonitorContext:
    """Everything the engine shares instead of process-wide state."""

    config: MonitorConfig
    error_handler: ErrorHandler
    store: SnapshotStore
    events: EventEmitter = field(default_factory=EventEmitter)
    notifier: CriticalNotifier = field(default_factory=CriticalNotifier)
    clock: Callable[[], datetime] = utc_now
    issue_client: IssueTrackerClient | None = None
    scan_slots: threading.Semaphore = field(init=False)

    def __post_init__(self) -> None:
        self.scan_slots = threading.Semaphore(self.config.monitoring.max_concurrent_scans)

    @classmethod
    def from_config(cls, config: MonitorConfig) -> MonitorContext:
        """Build a context with default collaborators for a configuration."""
        resilience = config.resilience
        handler = ErrorHandler(
            CircuitBreaker(failure_threshold=resilience.failure_threshold, window_seconds=resilience.window_seconds)
        )
        issue_client = None
        if config.monitoring.enable_issue_tracking:
            issue_client = IssueTrackerClient(config.github, handler)
        return cls(
            config=config,
            error_handler=handler,
            store=SnapshotStore(config.data_dir),
            issue_client=issue_client,
        )
