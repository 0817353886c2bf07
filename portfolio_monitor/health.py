"""Health scoring for a single project scan.

Deductions are independent of evaluation order: each rule subtracts a fixed
amount from a base of 100 and may escalate the status. Status only ever moves
towards ``critical``.
"""

from __future__ import annotations

from portfolio_monitor.constants import DEFAULT_STALE_DAYS, STATUS_RANK, HealthStatus
from portfolio_monitor.types import DocumentationFacts, FilesystemFacts, GitFacts, HealthAssessment

BASE_SCORE = 100

STAGNANT_DAYS = 7
CRITICAL_STAGNANT_DAYS = 14
MAX_UNCOMMITTED = 5
MAX_BEHIND = 5
MIN_DOCUMENTATION_SCORE = 70
MAX_BRANCHES = 5

DEDUCT_STAGNANT = 20
DEDUCT_CRITICAL_STAGNANT = 30
DEDUCT_UNCOMMITTED = 10
DEDUCT_BEHIND = 15
DEDUCT_STALE_BRANCHES = 10
DEDUCT_DOCUMENTATION = 15
DEDUCT_INACTIVE = 25


def escalate(current: HealthStatus, candidate: HealthStatus) -> HealthStatus:
    """Return the more severe of two statuses."""
    if STATUS_RANK.get(candidate, 0) > STATUS_RANK.get(current, 0):
        return candidate
    return current


def assess_health(
    git: GitFacts,
    filesystem: FilesystemFacts,
    documentation: DocumentationFacts,
    stale_days: int = DEFAULT_STALE_DAYS,
) -> HealthAssessment:
    """Score a project from its scan facts.

    Args:
        git: Source-control facts
        filesystem: Recent file activity
        documentation: Documentation facts
        stale_days: Branch idle threshold

    Returns:
        HealthAssessment with status, score, issues and recommendations
    """
    health = HealthAssessment()

    def deduct(points: int, issue: str, status: HealthStatus = HealthStatus.HEALTHY) -> None:
        health.score -= points
        health.issues.append(issue)
        health.status = escalate(health.status, status)

    if git.has_git:
        days = git.days_since_commit
        if days is not None and days > STAGNANT_DAYS:
            deduct(DEDUCT_STAGNANT, f"No commits in {days} days", HealthStatus.ATTENTION)
            if days > CRITICAL_STAGNANT_DAYS:
                health.score -= DEDUCT_CRITICAL_STAGNANT
                health.status = escalate(health.status, HealthStatus.CRITICAL)

        if git.uncommitted_changes > MAX_UNCOMMITTED:
            deduct(DEDUCT_UNCOMMITTED, f"{git.uncommitted_changes} uncommitted changes", HealthStatus.ATTENTION)

        if git.commits_behind > MAX_BEHIND:
            deduct(DEDUCT_BEHIND, f"{git.commits_behind} commits behind main", HealthStatus.ATTENTION)

        stale = [
            b for b in git.branches if b.days_since_activity is not None and b.days_since_activity > stale_days
        ]
        if stale:
            deduct(DEDUCT_STALE_BRANCHES, f"{len(stale)} stale branches ({stale_days}+ days)")

    if documentation.documentation_score < MIN_DOCUMENTATION_SCORE:
        deduct(
            DEDUCT_DOCUMENTATION,
            f"Poor documentation (score: {documentation.documentation_score}/100)",
            HealthStatus.ATTENTION,
        )

    if filesystem.recently_modified == 0 and not git.recent_commits:
        deduct(DEDUCT_INACTIVE, "No recent activity detected", HealthStatus.ATTENTION)

    health.recommendations = recommendations(git, documentation)
    return health


def recommendations(git: GitFacts, documentation: DocumentationFacts) -> list[str]:
    """Suggested actions for the conditions a scan found."""
    result = []
    if git.commits_behind > 0:
        result.append("Rebase or merge the latest changes from the default branch")
    if git.uncommitted_changes > 0:
        result.append("Commit or stash uncommitted changes")
    if not documentation.has_backlog:
        result.append("Add a backlog file to track work")
    if not documentation.has_proper_structure:
        result.append("Move loose markdown files into the docs directory")
    if len(git.branches) > MAX_BRANCHES:
        result.append("Clean up merged or abandoned branches")
    return result
