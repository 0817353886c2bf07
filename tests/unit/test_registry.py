"""Tests for ProjectRegistry and WorkerPool."""

import threading
from pathlib import Path
from unittest.mock import MagicMock

from portfolio_monitor.constants import HealthStatus, Priority, WorkerStatus
from portfolio_monitor.registry import ProjectRegistry, WorkerPool
from portfolio_monitor.types import Project, WorkerHandle


def project(name: str) -> Project:
    return Project(name=name, path=Path(f"/work/{name}"), type="general", priority=Priority.MEDIUM)


def handle(name: str) -> WorkerHandle:
    return WorkerHandle(project=name, worker=MagicMock())


class TestProjectRegistry:
    """Tests for ProjectRegistry."""

    def test_replace_rebuilds(self):
        registry = ProjectRegistry()
        registry.replace([project("a"), project("b")])
        registry.replace([project("c")])
        assert registry.names() == ["c"]
        assert "a" not in registry
        assert len(registry) == 1

    def test_replace_keeps_first_duplicate(self):
        registry = ProjectRegistry()
        first = project("a")
        registry.replace([first, project("a")])
        assert registry.get("a") is first

    def test_update_health(self):
        registry = ProjectRegistry()
        registry.replace([project("a")])

        assert registry.update_health("a", HealthStatus.CRITICAL, "2025-06-01T12:00:00+00:00") is True

        updated = registry.get("a")
        assert updated.health is HealthStatus.CRITICAL
        assert updated.last_scan == "2025-06-01T12:00:00+00:00"

    def test_update_unknown_project_ignored(self):
        registry = ProjectRegistry()
        assert registry.update_health("ghost", HealthStatus.HEALTHY, "t") is False
        assert len(registry) == 0

    def test_iteration_is_snapshot(self):
        registry = ProjectRegistry()
        registry.replace([project("a"), project("b")])
        names = []
        for p in registry:
            names.append(p.name)
            registry.replace([])
        assert names == ["a", "b"]


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_capacity(self):
        pool = WorkerPool(max_workers=2)
        pool.add(handle("a"))
        assert pool.has_capacity() is True
        pool.add(handle("b"))
        assert pool.has_capacity() is False
        pool.remove("a")
        assert pool.has_capacity() is True

    def test_pending_fifo_without_duplicates(self):
        pool = WorkerPool(max_workers=1)
        pool.enqueue("x")
        pool.enqueue("y")
        pool.enqueue("x")
        assert pool.pending() == ["x", "y"]
        assert pool.pop_pending() == "x"
        assert pool.pop_pending() == "y"
        assert pool.pop_pending() is None

    def test_adding_handle_removes_pending(self):
        pool = WorkerPool(max_workers=5)
        pool.enqueue("a")
        pool.add(handle("a"))
        assert pool.pending() == []

    def test_enqueue_ignores_running_project(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        pool.enqueue("a")
        assert pool.pending() == []

    def test_update_status_records_transition_once(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        pool.update_status("a", WorkerStatus.RUNNING)
        pool.update_status("a", WorkerStatus.RUNNING)
        assert pool.get("a").transitions == [WorkerStatus.RUNNING]
        pool.update_status("missing", WorkerStatus.RUNNING)

    def test_active_count_excludes_stopped(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        pool.add(handle("b"))
        pool.update_status("b", WorkerStatus.STOPPED)
        assert pool.active_count() == 1

    def test_clear(self):
        pool = WorkerPool(max_workers=1)
        pool.add(handle("a"))
        pool.enqueue("b")
        cleared = pool.clear()
        assert [h.project for h in cleared] == ["a"]
        assert len(pool) == 0
        assert pool.pending() == []

    def test_acknowledge_resets_missed_and_marks_running(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        assert pool.record_missed_check("a", max_missed=3) is True
        assert pool.record_missed_check("a", max_missed=3) is True

        assert pool.acknowledge("a") is True

        assert pool.get("a").missed_health_checks == 0
        assert pool.get("a").status is WorkerStatus.RUNNING
        assert pool.acknowledge("missing") is False

    def test_missed_checks_stop_at_limit(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        assert [pool.record_missed_check("a", max_missed=2) for _ in range(3)] == [True, True, False]
        assert pool.get("a").missed_health_checks == 2
        assert pool.record_missed_check("missing", max_missed=2) is False

    def test_replace_worker(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))
        pool.record_missed_check("a", max_missed=3)
        pool.update_status("a", WorkerStatus.RESTARTING)
        fresh = MagicMock()

        replaced = pool.replace_worker("a", fresh)

        assert replaced.worker is fresh
        assert replaced.restarts == 1
        assert replaced.missed_health_checks == 0
        assert replaced.status is WorkerStatus.STARTING
        assert pool.replace_worker("missing", fresh) is None

    def test_concurrent_missed_checks_lose_no_updates(self):
        pool = WorkerPool(max_workers=5)
        pool.add(handle("a"))

        def check():
            for _ in range(1000):
                pool.record_missed_check("a", max_missed=10_000)

        threads = [threading.Thread(target=check) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert pool.get("a").missed_health_checks == 4000
