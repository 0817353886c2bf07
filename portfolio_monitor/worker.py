"""Project worker: one thread per project running the inspection pipeline.

A worker reads commands from its inbox and pushes results to the shared
coordinator outbox. Scans never overlap within a worker; a shutdown command
is only read between scans, so an in-flight scan always completes.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from typing import TypeVar, assert_never

from portfolio_monitor.alerts import AlertTracker, evaluate_alerts
from portfolio_monitor.business import calculate_business_metrics
from portfolio_monitor.constants import SCAN_INTERVALS, HealthStatus, Priority
from portfolio_monitor.context import MonitorContext
from portfolio_monitor.exceptions import ApplicationError
from portfolio_monitor.filesystem import analyze_documentation, analyze_filesystem
from portfolio_monitor.git import GitInspector
from portfolio_monitor.health import assess_health
from portfolio_monitor.issues import collect_issue_facts
from portfolio_monitor.logging import get_project_logger
from portfolio_monitor.protocol import (
    ActivityReport,
    AlertRaised,
    ForceScan,
    HealthCheck,
    HealthResponse,
    HealthUpdate,
    Shutdown,
    WorkerCommand,
    WorkerFailure,
    WorkerMessage,
)
from portfolio_monitor.types import (
    DocumentationFacts,
    FilesystemFacts,
    GitFacts,
    HealthAssessment,
    IssueTrackerFacts,
    Project,
    ScanSnapshot,
)

T = TypeVar("T")


def scan_interval_for(priority: Priority) -> float:
    """Seconds between scans for a priority (HIGH 2m, MEDIUM 5m, LOW 15m)."""
    return float(SCAN_INTERVALS[priority])


class ProjectWorker:
    """Owns and periodically inspects exactly one project."""

    def __init__(
        self,
        project: Project,
        context: MonitorContext,
        outbox: queue.Queue[WorkerMessage],
        interval: float | None = None,
    ) -> None:
        """Initialize a worker.

        Args:
            project: Project to inspect
            context: Shared configuration and collaborators
            outbox: Coordinator queue receiving worker messages
            interval: Seconds between scans, defaults to the priority cadence
        """
        self.project = project
        self.context = context
        self.outbox = outbox
        self.interval = interval if interval is not None else scan_interval_for(project.priority)
        self.inbox: queue.Queue[WorkerCommand] = queue.Queue()
        self.tracker = AlertTracker(repeat=context.config.monitoring.repeat_alerts)
        self.last_scan: str | None = None
        self.last_status = "unknown"
        self.scan_count = 0
        self._started_at: float | None = None
        self._thread: threading.Thread | None = None
        self._log = get_project_logger(project.name)

    @property
    def name(self) -> str:
        return self.project.name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker thread; the first scan runs immediately."""
        if self._thread is not None:
            return
        self._started_at = time.monotonic()
        self._thread = threading.Thread(target=self._run, name=f"worker-{self.name}", daemon=True)
        self._thread.start()
        self._log.info(f"Worker started (scan every {self.interval:.0f}s)")

    def send(self, command: WorkerCommand) -> None:
        self.inbox.put(command)

    def stop(self, timeout: float | None = None) -> bool:
        """Ask the worker to shut down and wait for it.

        Returns:
            True if the thread exited within the timeout
        """
        self.send(Shutdown(self.name))
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def uptime(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def _run(self) -> None:
        next_scan = time.monotonic()
        while True:
            wait = max(0.0, next_scan - time.monotonic())
            try:
                command = self.inbox.get(timeout=wait)
            except queue.Empty:
                self.scan_cycle()
                next_scan = time.monotonic() + self.interval
                continue

            if not self.handle_command(command):
                break
        self._log.info("Worker stopped")

    def handle_command(self, command: WorkerCommand) -> bool:
        """Act on one coordinator command.

        Returns:
            False once the worker should exit
        """
        if isinstance(command, HealthCheck):
            self._emit(
                HealthResponse(
                    self.name,
                    status=self.last_status,
                    uptime_seconds=self.uptime(),
                    last_scan=self.last_scan,
                )
            )
            return True
        if isinstance(command, ForceScan):
            self._log.info("Forced scan requested")
            self.scan_cycle()
            return True
        if isinstance(command, Shutdown):
            return False
        assert_never(command)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_cycle(self) -> None:
        """Run one scan under the shared concurrency limit and report it."""
        with self.context.scan_slots:
            try:
                snapshot = self.perform_scan()
            except Exception as e:
                code = e.code if isinstance(e, ApplicationError) else None
                self._log.error(f"Scan failed: {e}")
                self._emit(WorkerFailure(self.name, error=str(e), code=code))
                return

        self.scan_count += 1
        self.last_scan = snapshot.timestamp
        self.last_status = snapshot.health.status.value
        self._emit(HealthUpdate(self.name, snapshot=snapshot.to_dict()))
        self._emit(
            ActivityReport(
                self.name,
                commits=len(snapshot.git.recent_commits),
                recent_commits=[c.to_dict() for c in snapshot.git.recent_commits],
                branches=len(snapshot.git.branches),
            )
        )

        alerts = self.tracker.filter(
            evaluate_alerts(self.project.priority, snapshot.git, snapshot.documentation, timestamp=snapshot.timestamp)
        )
        if alerts:
            self._emit(AlertRaised(self.name, alerts=[a.to_dict() for a in alerts]))

    def perform_scan(self) -> ScanSnapshot:
        """Run the inspection pipeline once.

        Every stage degrades to a safe default on failure.

        Returns:
            Immutable scan snapshot
        """
        config = self.context.config
        started = time.monotonic()
        path = self.project.path

        git = self._stage(
            "git",
            lambda: GitInspector(
                path, config.git, self.context.error_handler, self.name, clock=self.context.clock
            ).collect(),
            GitFacts(),
        )
        filesystem = self._stage(
            "filesystem",
            lambda: analyze_filesystem(
                path, config.documentation, config.git.recent_days, self.context.clock().timestamp()
            ),
            FilesystemFacts(),
        )
        documentation = self._stage(
            "documentation", lambda: analyze_documentation(path, config.documentation), DocumentationFacts()
        )

        issues: IssueTrackerFacts | None = None
        if self.context.issue_client is not None:
            issues = self._stage(
                "issues",
                lambda: collect_issue_facts(self.context.issue_client, git.remote_url),
                IssueTrackerFacts(enabled=True, error="Issue tracker analysis failed"),
            )

        health = self._stage(
            "health",
            lambda: assess_health(git, filesystem, documentation, config.monitoring.stale_days),
            HealthAssessment(status=HealthStatus.UNKNOWN, issues=["Health assessment failed"]),
        )
        business = calculate_business_metrics(
            self.name, str(path), self.project.priority, git, filesystem, documentation, config.business
        )

        self._log.debug(f"Scan completed in {time.monotonic() - started:.2f}s: {health.status.value}")
        return ScanSnapshot(
            timestamp=self.context.clock().isoformat(),
            project=self.name,
            path=str(path),
            priority=self.project.priority,
            git=git,
            filesystem=filesystem,
            documentation=documentation,
            health=health,
            business=business,
            issues=issues,
        )

    def _stage(self, name: str, func: Callable[[], T], default: T) -> T:
        try:
            return func()
        except Exception as e:
            self._log.warning(f"{name} stage failed, using defaults: {e}", extra={"operation": name})
            return default

    def _emit(self, message: WorkerMessage) -> None:
        self.outbox.put(message)
