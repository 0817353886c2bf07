"""Portfolio monitor type definitions using dataclasses."""

from __future__ import annotations

__all__ = [
    # Registry types
    "Project",
    "WorkerHandle",
    # Scan facts
    "BranchInfo",
    "CommitInfo",
    "GitFacts",
    "FilesystemFacts",
    "DocumentationFacts",
    "IssueTrackerFacts",
    # Derived results
    "HealthAssessment",
    "BusinessMetrics",
    "Alert",
    "ScanSnapshot",
]

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from portfolio_monitor.constants import (
    AlertSeverity,
    BusinessRisk,
    HealthStatus,
    Priority,
    RemoteStatus,
    RevenueImpact,
    Velocity,
    WorkerStatus,
)

if TYPE_CHECKING:
    from portfolio_monitor.worker import ProjectWorker


def utc_now() -> datetime:
    """Return the current aware UTC datetime."""
    return datetime.now(UTC)


# ============================================================================
# Registry types
# ============================================================================


@dataclass
class Project:
    """A discovered repository under supervision."""

    name: str
    path: Path
    type: str
    priority: Priority
    health: HealthStatus = HealthStatus.UNKNOWN
    last_scan: str | None = None
    has_git: bool = False
    markers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "path": str(self.path),
            "type": self.type,
            "priority": self.priority.value,
            "health": self.health.value,
            "last_scan": self.last_scan,
            "has_git": self.has_git,
            "markers": list(self.markers),
        }


@dataclass
class WorkerHandle:
    """Coordinator-held association of a project with its live worker."""

    project: str
    worker: ProjectWorker
    status: WorkerStatus = WorkerStatus.STARTING
    started_at: datetime = field(default_factory=utc_now)
    restarts: int = 0
    missed_health_checks: int = 0
    transitions: list[WorkerStatus] = field(default_factory=list)

    def transition(self, status: WorkerStatus) -> None:
        """Move to a new lifecycle status and record it."""
        self.status = status
        self.transitions.append(status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "restarts": self.restarts,
            "missed_health_checks": self.missed_health_checks,
        }


# ============================================================================
# Scan facts
# ============================================================================


@dataclass(frozen=True)
class BranchInfo:
    """A local branch with its last activity."""

    name: str
    last_commit: str | None
    last_author: str | None
    days_since_activity: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "last_commit": self.last_commit,
            "last_author": self.last_author,
            "days_since_activity": self.days_since_activity,
        }


@dataclass(frozen=True)
class CommitInfo:
    """A single commit in the recent-activity window."""

    hash: str
    author: str
    date: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "author": self.author, "date": self.date, "message": self.message}


@dataclass(frozen=True)
class GitFacts:
    """Source-control state of one project."""

    has_git: bool = False
    current_branch: str | None = None
    default_branch: str | None = None
    commits_ahead: int = 0
    commits_behind: int = 0
    uncommitted_changes: int = 0
    branches: tuple[BranchInfo, ...] = ()
    recent_commits: tuple[CommitInfo, ...] = ()
    last_commit_date: str | None = None
    days_since_commit: int | None = None
    remote_url: str | None = None
    remote_status: RemoteStatus = RemoteStatus.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_git": self.has_git,
            "current_branch": self.current_branch,
            "default_branch": self.default_branch,
            "commits_ahead": self.commits_ahead,
            "commits_behind": self.commits_behind,
            "uncommitted_changes": self.uncommitted_changes,
            "branches": [b.to_dict() for b in self.branches],
            "recent_commits": [c.to_dict() for c in self.recent_commits],
            "last_commit_date": self.last_commit_date,
            "days_since_commit": self.days_since_commit,
            "remote_url": self.remote_url,
            "remote_status": self.remote_status.value,
        }


@dataclass(frozen=True)
class FilesystemFacts:
    """Marker files and recent file activity."""

    recently_modified: int = 0
    markers: tuple[str, ...] = ()
    has_notes: bool = False
    has_backlog_dir: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "recently_modified": self.recently_modified,
            "markers": list(self.markers),
            "has_notes": self.has_notes,
            "has_backlog_dir": self.has_backlog_dir,
        }


@dataclass(frozen=True)
class DocumentationFacts:
    """Documentation presence and layout."""

    has_readme: bool = False
    has_notes: bool = False
    has_backlog: bool = False
    has_proper_structure: bool = True
    loose_docs: tuple[str, ...] = ()
    documentation_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_readme": self.has_readme,
            "has_notes": self.has_notes,
            "has_backlog": self.has_backlog,
            "has_proper_structure": self.has_proper_structure,
            "loose_docs": list(self.loose_docs),
            "documentation_score": self.documentation_score,
        }


@dataclass(frozen=True)
class IssueTrackerFacts:
    """Issue-tracker summary; ``error`` explains why data is unavailable."""

    enabled: bool = False
    connected: bool = False
    repository: str | None = None
    total_issues: int = 0
    open_issues: int = 0
    closed_issues: int = 0
    last_updated: str | None = None
    latest_issue: dict[str, Any] | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.connected and self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "connected": self.connected,
            "available": self.available,
            "repository": self.repository,
            "total_issues": self.total_issues,
            "open_issues": self.open_issues,
            "closed_issues": self.closed_issues,
            "last_updated": self.last_updated,
            "latest_issue": dict(self.latest_issue) if self.latest_issue else None,
            "error": self.error,
        }


# ============================================================================
# Derived results
# ============================================================================


@dataclass
class HealthAssessment:
    """Health status, advisory score, findings and recommendations.

    ``score`` is not clamped and may fall below zero.
    """

    status: HealthStatus = HealthStatus.HEALTHY
    score: int = 100
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "score": self.score,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class BusinessMetrics:
    """Business view of a scan."""

    priority: Priority
    revenue_impact: RevenueImpact
    days_since_activity: int | None
    velocity: Velocity
    business_risk: BusinessRisk
    risk_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "revenue_impact": self.revenue_impact.value,
            "days_since_activity": self.days_since_activity,
            "velocity_indicator": self.velocity.value,
            "business_risk": self.business_risk.value,
            "risk_score": self.risk_score,
        }


@dataclass(frozen=True)
class Alert:
    """An emitted alert. ``kind`` identifies the condition for suppression."""

    severity: AlertSeverity
    kind: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "kind": self.kind,
            "message": self.message,
            "details": dict(self.details),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ScanSnapshot:
    """One immutable inspection result for one project."""

    timestamp: str
    project: str
    path: str
    priority: Priority
    git: GitFacts
    filesystem: FilesystemFacts
    documentation: DocumentationFacts
    health: HealthAssessment
    business: BusinessMetrics
    issues: IssueTrackerFacts | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "project": self.project,
            "path": self.path,
            "priority": self.priority.value,
            "commits": len(self.git.recent_commits),
            "git": self.git.to_dict(),
            "filesystem": self.filesystem.to_dict(),
            "documentation": self.documentation.to_dict(),
            "issues": self.issues.to_dict() if self.issues is not None else None,
            "health": self.health.to_dict(),
            "business": self.business.to_dict(),
        }
