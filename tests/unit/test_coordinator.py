"""Tests for the Coordinator: pool management, aggregation and restarts."""

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from portfolio_monitor.constants import HealthStatus, WorkerStatus
from portfolio_monitor.coordinator import Coordinator
from portfolio_monitor.event_emitter import EVENT_ACTIVITY, EVENT_ALERT, EVENT_WORKER_RESTARTED
from portfolio_monitor.exceptions import FileSystemError
from portfolio_monitor.protocol import (
    ActivityReport,
    AlertRaised,
    ForceScan,
    HealthCheck,
    HealthResponse,
    HealthUpdate,
    WorkerFailure,
)


class FakeWorker:
    """Stand-in for ProjectWorker that records commands."""

    def __init__(self, project, context, outbox, on_stop=None):
        self.project = project
        self.outbox = outbox
        self.alive = False
        self.sent = []
        self.stop_calls = 0
        self.on_stop = on_stop
        self.stuck = False

    @property
    def name(self):
        return self.project.name

    def start(self):
        self.alive = True

    def stop(self, timeout=None):
        self.stop_calls += 1
        if self.on_stop is not None:
            self.on_stop()
        if not self.stuck:
            self.alive = False
        return not self.stuck

    def is_alive(self):
        return self.alive

    def send(self, command):
        self.sent.append(command)


class FakeFactory:
    """Worker factory keeping every worker it built."""

    def __init__(self):
        self.built: list[FakeWorker] = []
        self.fail_for: set[str] = set()

    def __call__(self, project, context, outbox):
        if project.name in self.fail_for:
            raise RuntimeError(f"cannot start {project.name}")
        worker = FakeWorker(project, context, outbox)
        self.built.append(worker)
        return worker

    def for_project(self, name):
        return [w for w in self.built if w.name == name]


@pytest.fixture
def projects(portfolio_root: Path) -> list[str]:
    names = ["alpha", "beta", "gamma"]
    for name in names:
        (portfolio_root / name).mkdir()
    return names


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def coordinator(context, factory, projects) -> Coordinator:
    context.notifier = MagicMock()
    context.events = MagicMock()
    return Coordinator(context, worker_factory=factory, sleep=lambda _s: None)


def snapshot(status: str) -> dict:
    return {"project": "alpha", "health": {"status": status, "score": 80, "issues": [], "recommendations": []}}


class TestStartup:
    """Tests for discovery and pool startup."""

    def test_start_discovers_and_starts_workers(self, coordinator, factory):
        coordinator.start(background=False)

        assert coordinator.registry.names() == ["alpha", "beta", "gamma"]
        assert len(coordinator.pool) == 3
        assert all(w.alive for w in factory.built)
        assert all(h.status is WorkerStatus.STARTING for h in coordinator.pool.handles())
        assert coordinator.running is True
        assert coordinator.config.data_dir.is_dir()
        assert coordinator.config.reports_dir.is_dir()

    def test_worker_cap_queues_the_rest(self, context, factory, projects):
        context.config.monitoring.max_workers = 2
        coordinator = Coordinator(context, worker_factory=factory, sleep=lambda _s: None)

        coordinator.start(background=False)

        assert len(coordinator.pool) == 2
        assert coordinator.pool.pending() == ["gamma"]
        assert len(coordinator.registry) == 3

    def test_failed_worker_start_is_skipped(self, coordinator, factory):
        factory.fail_for.add("beta")
        coordinator.start(background=False)
        assert "beta" not in coordinator.pool
        assert "beta" in coordinator.registry

    def test_unwritable_data_dir_fails_startup(self, context, factory, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        context.config.data.directory = str(blocker / "data")
        coordinator = Coordinator(context, worker_factory=factory, sleep=lambda _s: None)

        with pytest.raises(FileSystemError):
            coordinator.start(background=False)


class TestMessageHandling:
    """Tests for aggregation of worker messages."""

    def test_health_update_updates_registry_and_persists(self, coordinator):
        coordinator.start(background=False)
        message = HealthUpdate("alpha", snapshot=snapshot("critical"))

        coordinator.handle_message(message)

        project = coordinator.registry.get("alpha")
        assert project.health is HealthStatus.CRITICAL
        assert project.last_scan == message.timestamp
        files = coordinator.context.store.list("alpha", "health")
        assert len(files) == 1
        assert json.loads(files[0].read_text())["health"]["status"] == "critical"
        assert json.loads(files[0].read_text())["status"] == "critical"

    def test_first_update_marks_worker_running(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(HealthUpdate("alpha", snapshot=snapshot("healthy")))
        handle = coordinator.pool.get("alpha")
        assert handle.status is WorkerStatus.RUNNING
        assert handle.transitions == [WorkerStatus.STARTING, WorkerStatus.RUNNING]

    def test_invalid_status_becomes_unknown(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(HealthUpdate("alpha", snapshot=snapshot("mystery")))
        assert coordinator.registry.get("alpha").health is HealthStatus.UNKNOWN
        assert coordinator.context.store.latest("alpha", "health")["status"] == "unknown"

    def test_update_for_unknown_project_is_ignored(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(HealthUpdate("ghost", snapshot=snapshot("healthy")))
        assert "ghost" not in coordinator.registry

    def test_activity_report(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(ActivityReport("beta", commits=4, recent_commits=[], branches=2))

        latest = coordinator.context.store.latest("beta", "activity")
        assert latest["commits"] == 4
        event_type, data = coordinator.context.events.emit.call_args.args
        assert event_type == EVENT_ACTIVITY
        assert data["project"] == "beta"

    def test_critical_alert_notifies(self, coordinator):
        coordinator.start(background=False)
        alerts = [
            {"severity": "CRITICAL", "kind": "revenue_stagnant", "message": "Revenue project stagnant for 9 days"},
            {"severity": "INFO", "kind": "tracking_missing", "message": "Missing project tracking backlog"},
        ]

        coordinator.handle_message(AlertRaised("alpha", alerts=alerts))

        coordinator.context.notifier.notify.assert_called_once_with("alpha", alerts[0])
        emitted = [c.args[0] for c in coordinator.context.events.emit.call_args_list]
        assert emitted == [EVENT_ALERT, EVENT_ALERT]
        assert len(coordinator.context.store.latest("alpha", "alerts")["alerts"]) == 2

    def test_worker_failure_is_logged_only(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(WorkerFailure("alpha", error="boom", code="GIT_ERROR"))
        assert coordinator.pool.get("alpha").status is WorkerStatus.STARTING

    def test_process_messages_drains_outbox(self, coordinator):
        coordinator.start(background=False)
        coordinator.outbox.put(HealthUpdate("alpha", snapshot=snapshot("healthy")))
        coordinator.outbox.put(HealthResponse("beta"))
        coordinator.outbox.put(HealthUpdate("gamma", snapshot=snapshot("attention")))

        assert coordinator.process_messages(max_messages=2) == 2
        assert coordinator.process_messages() == 1
        assert coordinator.registry.get("gamma").health is HealthStatus.ATTENTION

    def test_handler_error_does_not_stop_processing(self, coordinator):
        coordinator.start(background=False)
        coordinator.outbox.put(HealthUpdate("alpha", snapshot=snapshot("healthy")))
        coordinator.outbox.put(HealthUpdate("beta", snapshot=snapshot("healthy")))

        with patch.object(coordinator.context.store, "save", side_effect=[RuntimeError("bug"), None]):
            assert coordinator.process_messages() == 2
        assert coordinator.registry.get("beta").health is HealthStatus.HEALTHY

    def test_force_scan(self, coordinator, factory):
        coordinator.start(background=False)
        assert coordinator.force_scan("alpha") is True
        assert isinstance(factory.for_project("alpha")[0].sent[-1], ForceScan)
        assert coordinator.force_scan("ghost") is False


class TestHealthChecks:
    """Tests for liveness probing and restarts."""

    def test_alive_workers_get_health_checks(self, coordinator, factory):
        coordinator.start(background=False)

        assert coordinator.perform_health_check() == []

        for worker in factory.built:
            assert isinstance(worker.sent[-1], HealthCheck)
        assert all(h.missed_health_checks == 1 for h in coordinator.pool.handles())

    def test_dead_worker_restarted_exactly_once(self, coordinator, factory):
        coordinator.start(background=False)
        old = factory.for_project("beta")[0]
        old.alive = False

        assert coordinator.perform_health_check() == ["beta"]

        handle = coordinator.pool.get("beta")
        assert handle.transitions.count(WorkerStatus.RESTARTING) == 1
        assert handle.transitions[-3:] == [WorkerStatus.UNHEALTHY, WorkerStatus.RESTARTING, WorkerStatus.STARTING]
        assert len(factory.for_project("beta")) == 2
        assert handle.worker is factory.for_project("beta")[1]
        assert handle.restarts == 1
        assert old.stop_calls == 1
        assert "beta" in coordinator.registry

        assert coordinator.perform_health_check() == []
        assert handle.transitions.count(WorkerStatus.RESTARTING) == 1
        assert len(factory.for_project("beta")) == 2

    def test_restart_emits_event(self, coordinator, factory):
        coordinator.start(background=False)
        factory.for_project("alpha")[0].alive = False
        coordinator.perform_health_check()
        coordinator.context.events.emit.assert_any_call(EVENT_WORKER_RESTARTED, {"project": "alpha", "restarts": 1})

    def test_missed_checks_trigger_restart(self, coordinator, factory):
        coordinator.context.config.monitoring.max_missed_health_checks = 2
        coordinator.start(background=False)

        assert coordinator.perform_health_check() == []
        assert coordinator.perform_health_check() == []
        restarted = coordinator.perform_health_check()

        assert sorted(restarted) == ["alpha", "beta", "gamma"]

    def test_response_resets_missed_checks(self, coordinator):
        coordinator.context.config.monitoring.max_missed_health_checks = 2
        coordinator.start(background=False)

        for _ in range(5):
            coordinator.perform_health_check()
            for name in ("alpha", "beta", "gamma"):
                coordinator.handle_message(HealthResponse(name))

        assert all(h.restarts == 0 for h in coordinator.pool.handles())
        assert all(h.status is WorkerStatus.RUNNING for h in coordinator.pool.handles())

    def test_concurrent_restart_is_ignored(self, coordinator, factory):
        coordinator.start(background=False)
        nested = []
        worker = factory.for_project("gamma")[0]
        worker.on_stop = lambda: nested.append(coordinator.restart_worker("gamma"))

        assert coordinator.restart_worker("gamma") is True
        assert nested == [False]
        assert len(factory.for_project("gamma")) == 2

    def test_failed_restart_requeues_project(self, coordinator, factory):
        coordinator.start(background=False)
        factory.for_project("alpha")[0].alive = False
        factory.fail_for.add("alpha")

        assert coordinator.perform_health_check() == []

        assert "alpha" not in coordinator.pool
        assert coordinator.pool.pending() == ["alpha"]
        assert "alpha" in coordinator.registry

    def test_pending_project_promoted_when_slot_frees(self, context, factory, projects):
        context.config.monitoring.max_workers = 2
        context.events = MagicMock()
        coordinator = Coordinator(context, worker_factory=factory, sleep=lambda _s: None)
        coordinator.start(background=False)
        assert coordinator.pool.pending() == ["gamma"]

        coordinator.pool.remove("alpha")
        coordinator.perform_health_check()

        assert "gamma" in coordinator.pool
        assert coordinator.pool.pending() == []

    def test_stuck_worker_restart_is_deferred(self, coordinator, factory):
        coordinator.context.config.monitoring.max_missed_health_checks = 1
        coordinator.start(background=False)
        coordinator.perform_health_check()
        for name in ("beta", "gamma"):
            coordinator.handle_message(HealthResponse(name))
        stuck = factory.for_project("alpha")[0]
        stuck.stuck = True

        assert coordinator.perform_health_check() == []

        handle = coordinator.pool.get("alpha")
        assert len(factory.for_project("alpha")) == 1
        assert handle.status is WorkerStatus.UNHEALTHY
        assert handle.worker is stuck

        stuck.stuck = False
        stuck.alive = False
        for name in ("beta", "gamma"):
            coordinator.handle_message(HealthResponse(name))
        assert coordinator.perform_health_check() == ["alpha"]
        assert len(factory.for_project("alpha")) == 2
        assert handle.restarts == 1

    def test_restart_unknown_project(self, coordinator):
        coordinator.start(background=False)
        assert coordinator.restart_worker("ghost") is False


class TestReportsAndShutdown:
    """Tests for report generation, status and stop."""

    def test_generate_reports(self, coordinator):
        coordinator.start(background=False)
        coordinator.handle_message(HealthUpdate("alpha", snapshot=snapshot("healthy")))
        coordinator.handle_message(HealthUpdate("beta", snapshot=snapshot("critical")))

        json_path, md_path = coordinator.generate_reports()

        summary = json.loads(json_path.read_text())
        assert summary["total_projects"] == 3
        assert summary["health_status"] == {"healthy": 1, "attention": 0, "critical": 1, "unknown": 1}
        assert summary["health_score"] == 40
        assert summary["active_workers"] == 3
        assert md_path.exists()

    def test_report_failure_returns_none(self, coordinator):
        coordinator.start(background=False)
        with patch("portfolio_monitor.coordinator.write_executive_summary", side_effect=OSError("read-only")):
            assert coordinator.generate_reports() is None

    def test_status(self, coordinator):
        coordinator.start(background=False)
        status = coordinator.status()
        assert status["running"] is True
        assert len(status["projects"]) == 3
        assert status["workers"]["alpha"]["status"] == "starting"
        assert "circuit_breakers" in status["resilience"]

    def test_stop_shuts_down_every_worker(self, coordinator, factory):
        coordinator.start(background=False)
        handles = coordinator.pool.handles()

        coordinator.stop()

        assert all(w.stop_calls == 1 for w in factory.built)
        assert all(h.status is WorkerStatus.STOPPED for h in handles)
        assert len(coordinator.pool) == 0
        assert coordinator.running is False

    def test_stop_during_restart_leaves_no_live_worker(self, context, factory, projects):
        pausing = threading.Event()
        resume = threading.Event()

        def pause(_seconds):
            pausing.set()
            resume.wait(timeout=10)

        coordinator = Coordinator(context, worker_factory=factory, sleep=pause)
        coordinator.start(background=False)
        factory.for_project("alpha")[0].alive = False
        checker = threading.Thread(target=coordinator.perform_health_check)
        checker.start()
        assert pausing.wait(timeout=10)

        coordinator.stop()
        resume.set()
        checker.join(timeout=10)

        assert not checker.is_alive()
        assert [w.name for w in factory.built if w.alive] == []
        assert len(factory.for_project("alpha")) == 1
        assert len(coordinator.pool) == 0
        assert coordinator.pool.pending() == []

    def test_stop_processes_remaining_messages(self, coordinator):
        coordinator.start(background=False)
        coordinator.outbox.put(HealthUpdate("alpha", snapshot=snapshot("attention")))
        coordinator.stop()
        assert coordinator.registry.get("alpha").health is HealthStatus.ATTENTION

    def test_background_threads_stop(self, coordinator):
        coordinator.start(background=True)
        coordinator.outbox.put(HealthUpdate("alpha", snapshot=snapshot("healthy")))
        coordinator.stop()
        assert coordinator.registry.get("alpha").health is HealthStatus.HEALTHY
