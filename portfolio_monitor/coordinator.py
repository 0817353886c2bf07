"""Master coordinator: discovery, worker pool, aggregation and reports."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, assert_never

from portfolio_monitor.constants import (
    SNAPSHOT_ACTIVITY,
    SNAPSHOT_ALERTS,
    SNAPSHOT_HEALTH,
    AlertSeverity,
    HealthStatus,
    WorkerStatus,
)
from portfolio_monitor.context import MonitorContext
from portfolio_monitor.discovery import discover_projects
from portfolio_monitor.event_emitter import (
    EVENT_ACTIVITY,
    EVENT_ALERT,
    EVENT_REPORT_GENERATED,
    EVENT_WORKER_RESTARTED,
)
from portfolio_monitor.logging import get_logger
from portfolio_monitor.protocol import (
    ActivityReport,
    AlertRaised,
    ForceScan,
    HealthCheck,
    HealthResponse,
    HealthUpdate,
    WorkerFailure,
    WorkerMessage,
)
from portfolio_monitor.registry import ProjectRegistry, WorkerPool
from portfolio_monitor.reports import (
    build_executive_summary,
    collect_activity_summary,
    collect_top_alerts,
    write_executive_summary,
)
from portfolio_monitor.types import Project, WorkerHandle
from portfolio_monitor.worker import ProjectWorker

logger = get_logger("coordinator")

WorkerFactory = Callable[[Project, MonitorContext, "queue.Queue[WorkerMessage]"], ProjectWorker]

MESSAGE_POLL_SECONDS = 0.5


def default_worker_factory(
    project: Project, context: MonitorContext, outbox: queue.Queue[WorkerMessage]
) -> ProjectWorker:
    return ProjectWorker(project, context, outbox)


class Coordinator:
    """Owns the project registry and the pool of live workers.

    Workers report through a single outbox queue. Only the coordinator
    mutates the registry and the pool, and both are lock-guarded.
    """

    def __init__(
        self,
        context: MonitorContext,
        worker_factory: WorkerFactory | None = None,
        cwd: str | Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the coordinator.

        Args:
            context: Configuration and shared collaborators
            worker_factory: Builds a worker for a project
            cwd: Working directory used when no project roots are configured
            sleep: Pause function used between stopping and restarting a worker
        """
        self.context = context
        self.config = context.config
        self.worker_factory = worker_factory or default_worker_factory
        self.cwd = cwd
        self._sleep = sleep

        self.registry = ProjectRegistry()
        self.pool = WorkerPool(self.config.monitoring.max_workers)
        self.outbox: queue.Queue[WorkerMessage] = queue.Queue()

        self._restarting: set[str] = set()
        self._restart_lock = threading.Lock()
        # Serializes worker creation against stop() clearing the pool
        self._lifecycle_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, background: bool = True) -> None:
        """Discover projects, start workers and the periodic loops.

        Args:
            background: Start the message, health-check and report threads

        Raises:
            ApplicationError: If the data or reports directory cannot be created
        """
        logger.info("Starting portfolio monitor")
        self._stop_event.clear()
        self._ensure_directories()
        self.discover()
        self.start_workers()

        self._running = True
        if background:
            monitoring = self.config.monitoring
            self._spawn("messages", self._message_loop)
            self._spawn(
                "health-check",
                lambda: self._periodic(monitoring.health_check_interval_seconds, self.perform_health_check),
            )
            self._spawn(
                "reports",
                lambda: self._periodic(monitoring.report_interval_minutes * 60, self.generate_reports),
            )
        logger.info(f"Monitoring {len(self.registry)} projects ({len(self.pool)} workers)")

    def _ensure_directories(self) -> None:
        handler = self.context.error_handler
        for directory in (self.config.data_dir, self.config.reports_dir):
            handler.safe_file_operation(
                lambda d=directory: Path(d).mkdir(parents=True, exist_ok=True), str(directory), "ensure_dir"
            )

    def _spawn(self, name: str, target: Callable[[], None]) -> None:
        thread = threading.Thread(target=target, name=f"coordinator-{name}", daemon=True)
        thread.start()
        self._threads.append(thread)

    def _periodic(self, interval: float, func: Callable[[], Any]) -> None:
        while not self._stop_event.wait(interval):
            try:
                func()
            except Exception as e:
                logger.error(f"Periodic task {getattr(func, '__name__', func)} failed: {e}")

    def stop(self) -> None:
        """Stop every worker, drain pending messages and clear the pool."""
        logger.info("Stopping portfolio monitor")
        self._running = False
        self._stop_event.set()

        grace = self.config.monitoring.shutdown_grace_seconds
        with self._lifecycle_lock:
            handles = self.pool.clear()
        for handle in handles:
            try:
                if not handle.worker.stop(timeout=grace):
                    logger.warning(f"Worker for {handle.project} did not exit within {grace}s")
            except Exception as e:
                logger.error(f"Error stopping worker for {handle.project}: {e}")
            handle.transition(WorkerStatus.STOPPED)

        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads = []

        self.process_messages()
        logger.info("Portfolio monitor stopped")

    def wait(self) -> None:
        """Block until stop() is called."""
        self._stop_event.wait()

    # ------------------------------------------------------------------
    # Discovery and worker pool
    # ------------------------------------------------------------------

    def discover(self) -> list[Project]:
        """Rebuild the registry from a fresh discovery pass."""
        logger.info("Discovering projects in portfolio...")
        projects = discover_projects(self.config, self.cwd)
        self.registry.replace(projects)
        return projects

    def start_workers(self) -> int:
        """Start workers up to the pool cap and queue the rest.

        Returns:
            Number of workers started
        """
        started = 0
        for project in self.registry.all():
            if project.name in self.pool:
                continue
            if self.pool.has_capacity():
                if self.start_worker(project) is not None:
                    started += 1
            else:
                self.pool.enqueue(project.name)

        queued = self.pool.pending()
        if queued:
            logger.warning(
                f"Worker cap of {self.pool.max_workers} reached, {len(queued)} projects queued: {', '.join(queued)}"
            )
        return started

    def start_worker(self, project: Project) -> WorkerHandle | None:
        """Create, start and register a worker for one project.

        Returns:
            The new handle, or None if the worker failed to start or the
            coordinator is stopping
        """
        with self._lifecycle_lock:
            if self._stop_event.is_set():
                return None
            try:
                worker = self.worker_factory(project, self.context, self.outbox)
                worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker for {project.name}: {e}")
                return None

            handle = WorkerHandle(project=project.name, worker=worker)
            handle.transition(WorkerStatus.STARTING)
            self.pool.add(handle)
        logger.debug(f"Started worker for {project.name}")
        return handle

    def promote_pending(self) -> int:
        """Start queued projects while slots are free.

        A project whose worker fails to start goes back to the queue and
        promotion stops until the next health check.
        """
        started = 0
        while self.pool.has_capacity() and not self._stop_event.is_set():
            name = self.pool.pop_pending()
            if name is None:
                break
            project = self.registry.get(name)
            if project is None:
                continue
            if self.start_worker(project) is None:
                self.pool.enqueue(name)
                break
            started += 1
        return started

    def force_scan(self, project: str) -> bool:
        """Ask a project's worker to scan now."""
        handle = self.pool.get(project)
        if handle is None:
            return False
        handle.worker.send(ForceScan(project))
        return True

    # ------------------------------------------------------------------
    # Message aggregation
    # ------------------------------------------------------------------

    def _message_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                message = self.outbox.get(timeout=MESSAGE_POLL_SECONDS)
            except queue.Empty:
                continue
            self._dispatch(message)

    def _dispatch(self, message: WorkerMessage) -> None:
        try:
            self.handle_message(message)
        except Exception as e:
            logger.error(f"Failed to handle {message.type.value} from {message.project}: {e}")

    def process_messages(self, max_messages: int | None = None) -> int:
        """Handle queued worker messages without blocking.

        Returns:
            Number of messages handled
        """
        handled = 0
        while max_messages is None or handled < max_messages:
            try:
                message = self.outbox.get_nowait()
            except queue.Empty:
                break
            self._dispatch(message)
            handled += 1
        return handled

    def handle_message(self, message: WorkerMessage) -> None:
        """Apply one worker message, keyed by project name."""
        project = message.project
        store = self.context.store

        if isinstance(message, HealthUpdate):
            try:
                status = HealthStatus(message.status)
            except ValueError:
                status = HealthStatus.UNKNOWN
            if not self.registry.update_health(project, status, message.timestamp):
                logger.debug(f"Health update for unregistered project {project}")
            store.save(project, SNAPSHOT_HEALTH, {"status": status.value, **message.data})
            self.pool.acknowledge(project)
        elif isinstance(message, ActivityReport):
            store.save(project, SNAPSHOT_ACTIVITY, {"timestamp": message.timestamp, **message.data})
            self.context.events.emit(EVENT_ACTIVITY, {"project": project, **message.data})
        elif isinstance(message, AlertRaised):
            store.save(project, SNAPSHOT_ALERTS, {"timestamp": message.timestamp, **message.data})
            for alert in message.alerts:
                self.context.events.emit(EVENT_ALERT, {"project": project, **alert})
                if alert.get("severity") == AlertSeverity.CRITICAL.value:
                    self.context.notifier.notify(project, alert)
        elif isinstance(message, WorkerFailure):
            logger.error(f"Worker error: {message.error}", extra={"project": project})
        elif isinstance(message, HealthResponse):
            self.pool.acknowledge(project)
        else:
            assert_never(message)

    # ------------------------------------------------------------------
    # Health checks and restarts
    # ------------------------------------------------------------------

    def perform_health_check(self) -> list[str]:
        """Check every worker and restart dead or unresponsive ones.

        Returns:
            Names of projects whose worker was restarted
        """
        max_missed = self.config.monitoring.max_missed_health_checks
        restarted = []
        healthy = 0

        for handle in self.pool.handles():
            if handle.status in (WorkerStatus.RESTARTING, WorkerStatus.STOPPED):
                continue

            if not handle.worker.is_alive():
                reason = "worker not alive"
            elif not self.pool.record_missed_check(handle.project, max_missed):
                if handle.project not in self.pool:
                    continue
                reason = f"{max_missed} missed health checks"
            else:
                handle.worker.send(HealthCheck(handle.project))
                healthy += 1
                continue

            logger.warning(f"Worker unhealthy: {reason}", extra={"project": handle.project})
            self.pool.update_status(handle.project, WorkerStatus.UNHEALTHY)
            if self.restart_worker(handle.project):
                restarted.append(handle.project)

        self.promote_pending()
        logger.debug(f"Health check: {healthy} healthy, {len(restarted)} restarted")
        return restarted

    def restart_worker(self, project: str) -> bool:
        """Tear down a worker and start a fresh one for the same project.

        The registry entry is kept. Concurrent calls for the same project
        are ignored while a restart is in progress. When the old thread does
        not exit within the grace period the restart is deferred to the next
        health check, so a project never has two scanning threads.

        Returns:
            True if a new worker was started
        """
        with self._restart_lock:
            if project in self._restarting:
                return False
            self._restarting.add(project)

        try:
            handle = self.pool.get(project)
            registered = self.registry.get(project)
            if handle is None or registered is None:
                return False

            self.pool.update_status(project, WorkerStatus.RESTARTING)
            grace = self.config.monitoring.shutdown_grace_seconds
            old = handle.worker
            try:
                stopped = old.stop(timeout=grace)
            except Exception as e:
                logger.warning(f"Error stopping worker: {e}", extra={"project": project})
                stopped = not old.is_alive()
            if not stopped:
                logger.warning(f"Worker still running after {grace}s, restart deferred", extra={"project": project})
                self.pool.update_status(project, WorkerStatus.UNHEALTHY)
                return False

            self._sleep(self.config.monitoring.restart_pause_seconds)

            with self._lifecycle_lock:
                if self._stop_event.is_set() or self.pool.get(project) is not handle:
                    logger.info("Restart abandoned, worker released", extra={"project": project})
                    return False
                try:
                    worker = self.worker_factory(registered, self.context, self.outbox)
                    worker.start()
                except Exception as e:
                    logger.error(f"Failed to restart worker: {e}", extra={"project": project})
                    self.pool.remove(project)
                    handle.transition(WorkerStatus.STOPPED)
                    self.pool.enqueue(project)
                    return False
                self.pool.replace_worker(project, worker)

            self.context.events.emit(EVENT_WORKER_RESTARTED, {"project": project, "restarts": handle.restarts})
            logger.info("Restarted worker", extra={"project": project})
            return True
        finally:
            with self._restart_lock:
                self._restarting.discard(project)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_reports(self) -> tuple[Path, Path] | None:
        """Regenerate the executive summary; failures are logged only."""
        logger.info("Generating portfolio reports...")
        names = self.registry.names()
        try:
            summary = build_executive_summary(
                projects=self.registry.all(),
                active_workers=self.pool.active_count(),
                queued_projects=self.pool.pending(),
                top_alerts=collect_top_alerts(self.context.store, names),
                activity=collect_activity_summary(self.context.store, names),
                report_interval_minutes=self.config.monitoring.report_interval_minutes,
                now=self.context.clock(),
            )
            paths = write_executive_summary(self.config.reports_dir, summary)
        except OSError as e:
            logger.error(f"Report generation failed: {e}")
            return None

        self.context.events.emit(EVENT_REPORT_GENERATED, {"health_score": summary["health_score"]})
        return paths

    def status(self) -> dict[str, Any]:
        """Current coordinator status."""
        return {
            "running": self._running,
            "projects": [p.to_dict() for p in self.registry.all()],
            "workers": {h.project: h.to_dict() for h in self.pool.handles()},
            "queued": self.pool.pending(),
            "resilience": self.context.error_handler.get_status(),
        }
