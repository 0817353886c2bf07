"""Alert evaluation, edge-triggered suppression and critical notifications."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from portfolio_monitor.constants import AlertSeverity, Priority
from portfolio_monitor.logging import get_logger
from portfolio_monitor.types import Alert, DocumentationFacts, GitFacts

logger = get_logger("alerts")

STAGNANT_ALERT_DAYS = 7
MAX_BEHIND_ALERT = 20
MAX_UNCOMMITTED_ALERT = 20

# Stable alert kinds used for suppression
KIND_REVENUE_STAGNANT = "revenue_stagnant"
KIND_FAR_BEHIND = "far_behind"
KIND_MANY_UNCOMMITTED = "many_uncommitted"
KIND_DOC_STRUCTURE = "file_organization"
KIND_TRACKING_MISSING = "tracking_missing"


def evaluate_alerts(
    priority: Priority, git: GitFacts, documentation: DocumentationFacts, timestamp: str | None = None
) -> list[Alert]:
    """Return every alert whose condition holds for this scan.

    Args:
        priority: Project priority
        git: Source-control facts of the scan
        documentation: Documentation facts of the scan
        timestamp: Scan time stamped on every alert, defaults to now
    """
    alerts = []

    days = git.days_since_commit
    if priority is Priority.HIGH and days is not None and days > STAGNANT_ALERT_DAYS:
        alerts.append(
            Alert(
                severity=AlertSeverity.CRITICAL,
                kind=KIND_REVENUE_STAGNANT,
                message=f"Revenue project stagnant for {days} days",
                details={"days_since_commit": days, "project_type": "revenue"},
            )
        )

    if git.commits_behind > MAX_BEHIND_ALERT:
        alerts.append(
            Alert(
                severity=AlertSeverity.WARNING,
                kind=KIND_FAR_BEHIND,
                message=f"Project significantly behind main ({git.commits_behind} commits)",
                details={"commits_behind": git.commits_behind},
            )
        )

    if git.uncommitted_changes > MAX_UNCOMMITTED_ALERT:
        alerts.append(
            Alert(
                severity=AlertSeverity.WARNING,
                kind=KIND_MANY_UNCOMMITTED,
                message=f"Many uncommitted changes ({git.uncommitted_changes} files)",
                details={"uncommitted_changes": git.uncommitted_changes},
            )
        )

    if not documentation.has_proper_structure:
        alerts.append(
            Alert(
                severity=AlertSeverity.INFO,
                kind=KIND_DOC_STRUCTURE,
                message="Documentation files not in proper docs directory",
                details={"issue": KIND_DOC_STRUCTURE, "files": list(documentation.loose_docs)},
            )
        )

    if not documentation.has_backlog:
        alerts.append(
            Alert(
                severity=AlertSeverity.INFO,
                kind=KIND_TRACKING_MISSING,
                message="Missing project tracking backlog",
                details={"issue": KIND_TRACKING_MISSING},
            )
        )

    if timestamp is not None:
        return [replace(alert, timestamp=timestamp) for alert in alerts]
    return alerts


class AlertTracker:
    """Remembers which alert kinds are active for one project.

    With ``repeat`` off, an alert passes only when its condition starts to
    hold; the kind re-arms once a scan no longer reports it.
    """

    def __init__(self, repeat: bool = False) -> None:
        self.repeat = repeat
        self._active: set[str] = set()

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)

    def filter(self, alerts: Iterable[Alert]) -> list[Alert]:
        """Return the alerts that should be emitted for this scan."""
        current = list(alerts)
        kinds = {a.kind for a in current}
        if self.repeat:
            self._active = kinds
            return current

        fresh = [a for a in current if a.kind not in self._active]
        self._active = kinds
        return fresh


class CriticalNotifier:
    """Prints critical alerts to the console as they arrive."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self._lock = threading.Lock()

    def notify(self, project: str, alert: dict[str, object]) -> None:
        """Print one alert panel; never raises."""
        details = alert.get("details") or {}
        lines = [
            f"[bold]Project:[/bold] {escape(project)}",
            f"[bold]Message:[/bold] {escape(str(alert.get('message', '')))}",
            f"[bold]Time:[/bold] {alert.get('timestamp') or datetime.now().isoformat()}",
        ]
        if isinstance(details, dict) and details:
            lines.append(f"[bold]Details:[/bold] {escape(str(details))}")

        try:
            with self._lock:
                self.console.print(Panel("\n".join(lines), title="CRITICAL ALERT", border_style="red"))
        except Exception as e:
            logger.error(f"Failed to print critical alert for {project}: {e}")
