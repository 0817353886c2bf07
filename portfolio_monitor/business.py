"""Business metrics derived from a project scan."""

from __future__ import annotations

from portfolio_monitor.config import BusinessConfig
from portfolio_monitor.constants import BusinessRisk, Priority, RevenueImpact, Velocity
from portfolio_monitor.types import BusinessMetrics, DocumentationFacts, FilesystemFacts, GitFacts

# (commits, files) lower bounds; either one qualifies
VELOCITY_BUCKETS = (
    (Velocity.HIGH, 10, 20),
    (Velocity.MEDIUM, 5, 10),
    (Velocity.LOW, 1, 1),
)

# Minimum accumulated risk points per level
RISK_THRESHOLDS = (
    (BusinessRisk.HIGH, 7),
    (BusinessRisk.MEDIUM, 4),
    (BusinessRisk.LOW, 1),
)


def revenue_impact(name: str, path: str, business: BusinessConfig) -> RevenueImpact:
    """Classify revenue impact from configured allow-lists and path markers."""
    if name in business.revenue_projects or any(marker in path for marker in business.revenue_paths):
        return RevenueImpact.DIRECT_REVENUE
    if name in business.strategic_projects:
        return RevenueImpact.STRATEGIC_INVESTMENT
    return RevenueImpact.COST_SAVINGS


def velocity_indicator(commits: int, files: int) -> Velocity:
    for level, min_commits, min_files in VELOCITY_BUCKETS:
        if commits >= min_commits or files >= min_files:
            return level
    return Velocity.NONE


def risk_points(
    impact: RevenueImpact,
    git: GitFacts,
    documentation: DocumentationFacts,
) -> int:
    """Accumulate weighted risk conditions."""
    points = 0
    days = git.days_since_commit
    if impact is RevenueImpact.DIRECT_REVENUE and days is not None:
        if days > 7:
            points += 3
        if days > 14:
            points += 5
    if git.commits_behind > 10:
        points += 2
    if git.uncommitted_changes > 10:
        points += 1
    if documentation.documentation_score < 50:
        points += 2
    return points


def business_risk(points: int) -> BusinessRisk:
    for level, threshold in RISK_THRESHOLDS:
        if points >= threshold:
            return level
    return BusinessRisk.NONE


def calculate_business_metrics(
    name: str,
    path: str,
    priority: Priority,
    git: GitFacts,
    filesystem: FilesystemFacts,
    documentation: DocumentationFacts,
    business: BusinessConfig | None = None,
) -> BusinessMetrics:
    """Build the business view of one scan.

    Args:
        name: Project name
        path: Absolute project path
        priority: Project priority
        git: Source-control facts
        filesystem: Recent file activity
        documentation: Documentation facts
        business: Allow-lists and path markers

    Returns:
        BusinessMetrics
    """
    business = business or BusinessConfig()
    impact = revenue_impact(name, path, business)
    points = risk_points(impact, git, documentation)
    return BusinessMetrics(
        priority=priority,
        revenue_impact=impact,
        days_since_activity=git.days_since_commit,
        velocity=velocity_indicator(len(git.recent_commits), filesystem.recently_modified),
        business_risk=business_risk(points),
        risk_score=points,
    )
