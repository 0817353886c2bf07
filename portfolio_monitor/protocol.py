"""Typed messages exchanged between project workers and the coordinator.

Every message is a frozen dataclass with a ``type`` tag. Workers push the
worker-to-coordinator variants onto the shared outbox queue; the coordinator
puts the coordinator-to-worker variants into a worker's inbox. The wire shape
produced by :meth:`to_dict` is ``{type, data, timestamp, project}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from portfolio_monitor.constants import MessageType
from portfolio_monitor.types import utc_now


@dataclass(frozen=True)
class _Message:
    type: ClassVar[MessageType]

    project: str
    timestamp: str = field(default_factory=lambda: utc_now().isoformat(), kw_only=True)

    @property
    def data(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape."""
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "project": self.project,
        }


# ============================================================================
# Worker -> Coordinator
# ============================================================================


@dataclass(frozen=True)
class HealthUpdate(_Message):
    """Full scan snapshot; carries the project's new health status."""

    type: ClassVar[MessageType] = MessageType.HEALTH_UPDATE

    snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def data(self) -> dict[str, Any]:
        return self.snapshot

    @property
    def status(self) -> str:
        return str(self.snapshot.get("health", {}).get("status", "unknown"))


@dataclass(frozen=True)
class ActivityReport(_Message):
    """Recent source-control activity for a project."""

    type: ClassVar[MessageType] = MessageType.ACTIVITY_REPORT

    commits: int = 0
    recent_commits: list[dict[str, Any]] = field(default_factory=list)
    branches: int = 0

    @property
    def data(self) -> dict[str, Any]:
        return {"commits": self.commits, "recent_commits": self.recent_commits, "branches": self.branches}


@dataclass(frozen=True)
class AlertRaised(_Message):
    """Alerts evaluated during one scan."""

    type: ClassVar[MessageType] = MessageType.ALERT

    alerts: list[dict[str, Any]] = field(default_factory=list)

    @property
    def data(self) -> dict[str, Any]:
        return {"alerts": self.alerts}


@dataclass(frozen=True)
class WorkerFailure(_Message):
    """A scan or command failed inside the worker."""

    type: ClassVar[MessageType] = MessageType.ERROR

    error: str = ""
    code: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        return {"error": self.error, "code": self.code}


@dataclass(frozen=True)
class HealthResponse(_Message):
    """Acknowledgement of a health check."""

    type: ClassVar[MessageType] = MessageType.HEALTH_RESPONSE

    status: str = "unknown"
    uptime_seconds: float = 0.0
    last_scan: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        return {"status": self.status, "uptime": self.uptime_seconds, "last_scan": self.last_scan}


# ============================================================================
# Coordinator -> Worker
# ============================================================================


@dataclass(frozen=True)
class HealthCheck(_Message):
    """Liveness check; the worker answers with a HealthResponse."""

    type: ClassVar[MessageType] = MessageType.HEALTH_CHECK


@dataclass(frozen=True)
class ForceScan(_Message):
    """Run the pipeline immediately, outside the timer."""

    type: ClassVar[MessageType] = MessageType.FORCE_SCAN


@dataclass(frozen=True)
class Shutdown(_Message):
    """Cancel the timer and stop after any in-flight scan."""

    type: ClassVar[MessageType] = MessageType.SHUTDOWN


WorkerMessage = HealthUpdate | ActivityReport | AlertRaised | WorkerFailure | HealthResponse
WorkerCommand = HealthCheck | ForceScan | Shutdown
