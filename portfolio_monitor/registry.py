"""Thread-safe project registry and worker-handle pool.

Both structures are owned by the coordinator. Workers never touch them;
they only send messages. All public methods acquire the internal ``RLock``
so callers never need external synchronisation.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from portfolio_monitor.constants import HealthStatus, WorkerStatus
from portfolio_monitor.types import Project, WorkerHandle, utc_now

if TYPE_CHECKING:
    from portfolio_monitor.worker import ProjectWorker


class ProjectRegistry:
    """Canonical set of discovered projects keyed by name."""

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, projects: Iterable[Project]) -> None:
        """Clear the registry and rebuild it from a discovery pass."""
        with self._lock:
            self._projects = {}
            for project in projects:
                self._projects.setdefault(project.name, project)

    def update_health(self, name: str, status: HealthStatus, last_scan: str) -> bool:
        """Apply a health update; unknown project names are ignored.

        Returns:
            True if the project exists
        """
        with self._lock:
            project = self._projects.get(name)
            if project is None:
                return False
            project.health = status
            project.last_scan = last_scan
            return True

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Project | None:
        with self._lock:
            return self._projects.get(name)

    def all(self) -> list[Project]:
        """Return a snapshot list of every project."""
        with self._lock:
            return list(self._projects.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._projects)

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._projects

    def __iter__(self) -> Iterator[Project]:
        """Iterate over projects (snapshot)."""
        with self._lock:
            return iter(list(self._projects.values()))


class WorkerPool:
    """Live worker handles plus a FIFO queue of projects waiting for a slot."""

    def __init__(self, max_workers: int) -> None:
        self.max_workers = max_workers
        self._handles: dict[str, WorkerHandle] = {}
        self._pending: deque[str] = deque()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def add(self, handle: WorkerHandle) -> None:
        with self._lock:
            self._handles[handle.project] = handle
            if handle.project in self._pending:
                self._pending.remove(handle.project)

    def remove(self, project: str) -> WorkerHandle | None:
        with self._lock:
            return self._handles.pop(project, None)

    def get(self, project: str) -> WorkerHandle | None:
        with self._lock:
            return self._handles.get(project)

    def handles(self) -> list[WorkerHandle]:
        """Return a snapshot list of every handle."""
        with self._lock:
            return list(self._handles.values())

    def update_status(self, project: str, status: WorkerStatus) -> None:
        """Transition a handle in place if it exists."""
        with self._lock:
            handle = self._handles.get(project)
            if handle is not None and handle.status is not status:
                handle.transition(status)

    def acknowledge(self, project: str) -> bool:
        """Clear missed health checks; a starting worker becomes running.

        Returns:
            True if the project has a handle
        """
        with self._lock:
            handle = self._handles.get(project)
            if handle is None:
                return False
            handle.missed_health_checks = 0
            if handle.status is WorkerStatus.STARTING:
                handle.transition(WorkerStatus.RUNNING)
            return True

    def record_missed_check(self, project: str, max_missed: int) -> bool:
        """Count one more unanswered health check.

        Returns:
            False without counting when the handle is gone or has already
            missed ``max_missed`` checks
        """
        with self._lock:
            handle = self._handles.get(project)
            if handle is None or handle.missed_health_checks >= max_missed:
                return False
            handle.missed_health_checks += 1
            return True

    def replace_worker(self, project: str, worker: ProjectWorker) -> WorkerHandle | None:
        """Swap in a restarted worker and reset its liveness bookkeeping."""
        with self._lock:
            handle = self._handles.get(project)
            if handle is None:
                return None
            handle.worker = worker
            handle.restarts += 1
            handle.missed_health_checks = 0
            handle.started_at = utc_now()
            handle.transition(WorkerStatus.STARTING)
            return handle

    def has_capacity(self) -> bool:
        with self._lock:
            return len(self._handles) < self.max_workers

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for h in self._handles.values() if h.status is not WorkerStatus.STOPPED)

    def clear(self) -> list[WorkerHandle]:
        """Remove every handle and pending entry, returning the handles."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            self._pending.clear()
            return handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, project: object) -> bool:
        with self._lock:
            return project in self._handles

    # ------------------------------------------------------------------
    # Pending queue
    # ------------------------------------------------------------------

    def enqueue(self, project: str) -> None:
        with self._lock:
            if project not in self._pending and project not in self._handles:
                self._pending.append(project)

    def pop_pending(self) -> str | None:
        """Next queued project, oldest first."""
        with self._lock:
            return self._pending.popleft() if self._pending else None

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)
