"""Portfolio health aggregation and executive summary reports."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from portfolio_monitor.constants import (
    EXECUTIVE_SUMMARY_JSON,
    EXECUTIVE_SUMMARY_MD,
    HEALTH_SCORE_WEIGHTS,
    SNAPSHOT_ACTIVITY,
    SNAPSHOT_ALERTS,
    AlertSeverity,
    HealthStatus,
)
from portfolio_monitor.logging import get_logger
from portfolio_monitor.persistence import SnapshotStore, atomic_write_text
from portfolio_monitor.types import Project, utc_now

logger = get_logger("reports")

TOP_ALERT_LIMIT = 10
_TOP_ALERT_SEVERITIES = {AlertSeverity.CRITICAL.value, AlertSeverity.WARNING.value}


def portfolio_health(projects: Iterable[Project]) -> dict[str, int]:
    """Histogram of project health statuses."""
    histogram = {status.value: 0 for status in HealthStatus}
    for project in projects:
        histogram[project.health.value] += 1
    return histogram


def calculate_health_score(histogram: dict[str, int]) -> int:
    """Weighted 0-100 portfolio score; 0 for an empty portfolio."""
    total = sum(histogram.values())
    if total == 0:
        return 0
    weighted = sum(HEALTH_SCORE_WEIGHTS[status] * histogram.get(status.value, 0) for status in HealthStatus)
    return round(weighted / total)


def collect_top_alerts(
    store: SnapshotStore, projects: Iterable[str], limit: int = TOP_ALERT_LIMIT
) -> list[dict[str, Any]]:
    """Most recent CRITICAL and WARNING alerts across projects."""
    alerts: list[dict[str, Any]] = []
    for name in projects:
        latest = store.latest(name, SNAPSHOT_ALERTS)
        if not latest:
            continue
        for alert in latest.get("alerts", []):
            if alert.get("severity") in _TOP_ALERT_SEVERITIES:
                alerts.append({"project": name, **alert})

    # CRITICAL sorts before WARNING, newest first within a severity
    alerts.sort(key=lambda a: a.get("timestamp", ""), reverse=True)
    alerts.sort(key=lambda a: a.get("severity") != AlertSeverity.CRITICAL.value)
    return alerts[:limit]


def collect_activity_summary(store: SnapshotStore, projects: Iterable[str]) -> dict[str, int]:
    """Commits per project from each project's latest activity report."""
    summary = {}
    for name in projects:
        latest = store.latest(name, SNAPSHOT_ACTIVITY)
        if latest is not None:
            summary[name] = int(latest.get("commits", 0))
    return summary


def build_executive_summary(
    projects: list[Project],
    active_workers: int,
    queued_projects: list[str],
    top_alerts: list[dict[str, Any]],
    activity: dict[str, int],
    report_interval_minutes: float,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the machine-readable executive summary."""
    moment = now or utc_now()
    histogram = portfolio_health(projects)
    return {
        "timestamp": moment.isoformat(),
        "total_projects": len(projects),
        "active_workers": active_workers,
        "queued_projects": list(queued_projects),
        "health_status": histogram,
        "health_score": calculate_health_score(histogram),
        "top_alerts": top_alerts,
        "activity_summary": activity,
        "next_update": (moment + timedelta(minutes=report_interval_minutes)).isoformat(),
    }


def _percent(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


def render_executive_markdown(summary: dict[str, Any]) -> str:
    """Render the human-readable executive summary."""
    health = summary["health_status"]
    total = summary["total_projects"]
    operational = summary["active_workers"] == total and not summary["queued_projects"]

    lines = [
        "# Portfolio Executive Summary",
        f"**Generated**: {summary['timestamp']}",
        f"**Portfolio Health**: {summary['health_score']}/100",
        "",
        "## Executive Dashboard",
        "| Status | Count | Percentage |",
        "|--------|-------|------------|",
        f"| Healthy Projects | {health['healthy']} | {_percent(health['healthy'], total)}% |",
        f"| Need Attention | {health['attention']} | {_percent(health['attention'], total)}% |",
        f"| Critical Issues | {health['critical']} | {_percent(health['critical'], total)}% |",
        f"| Unknown Status | {health['unknown']} | {_percent(health['unknown'], total)}% |",
        "",
        "## Key Metrics",
        f"- **Total Projects Monitored**: {total}",
        f"- **Active Workers**: {summary['active_workers']}",
        f"- **Queued Projects**: {len(summary['queued_projects'])}",
        f"- **System Health**: {'All systems operational' if operational else 'Some workers offline or queued'}",
        "",
        "## Recent Activity Summary",
    ]

    activity = summary["activity_summary"]
    if activity:
        lines.extend(
            f"- **{name}**: {commits} commits in the last 7 days" for name, commits in sorted(activity.items())
        )
    else:
        lines.append("Activity data being collected...")

    lines.extend(["", "## Top Alerts"])
    if summary["top_alerts"]:
        lines.extend(
            f"- **{a['severity']}** {a['project']}: {a.get('message', '')}" for a in summary["top_alerts"]
        )
    else:
        lines.append("No critical alerts")

    lines.extend(["", "---", f"*Next update: {summary['next_update']}*", ""])
    return "\n".join(lines)


def write_executive_summary(reports_dir: str | Path, summary: dict[str, Any]) -> tuple[Path, Path]:
    """Regenerate both summary files in place.

    Raises:
        OSError: If either file cannot be written
    """
    directory = Path(reports_dir)
    json_path = directory / EXECUTIVE_SUMMARY_JSON
    md_path = directory / EXECUTIVE_SUMMARY_MD
    atomic_write_text(json_path, json.dumps(summary, indent=2, default=str))
    atomic_write_text(md_path, render_executive_markdown(summary))
    logger.info(f"Wrote executive summary to {directory}")
    return json_path, md_path
