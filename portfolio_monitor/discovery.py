"""Project discovery and classification."""

from __future__ import annotations

from pathlib import Path

from portfolio_monitor.config import BusinessConfig, MonitorConfig
from portfolio_monitor.constants import OPT_OUT_MARKER, PROJECT_TYPE_MARKERS, VCS_DIR, Priority
from portfolio_monitor.logging import get_logger
from portfolio_monitor.types import Project

logger = get_logger("discovery")


def classify_project_type(project_path: str | Path) -> tuple[str, list[str]]:
    """Derive the ecosystem type from marker files.

    Markers are checked in a fixed order and the first match wins. Without a
    manifest, a name containing ``web`` or ``site`` or an ``index.html`` at
    the root means ``web``; everything else is ``general``.

    Returns:
        Tuple of (type, markers present)
    """
    root = Path(project_path)
    present = [name for name, _ in PROJECT_TYPE_MARKERS if (root / name).is_file()]
    for name, kind in PROJECT_TYPE_MARKERS:
        if name in present:
            return kind, present

    lowered = root.name.lower()
    if "web" in lowered or "site" in lowered or (root / "index.html").is_file():
        return "web", present
    return "general", present


def determine_priority(name: str, project_path: str | Path, business: BusinessConfig | None = None) -> Priority:
    """Assign a priority from configured names and path markers."""
    business = business or BusinessConfig()
    path = str(project_path)
    if name in business.high_priority_projects or any(m in path for m in business.high_priority_paths):
        return Priority.HIGH
    if name in business.medium_priority_projects:
        return Priority.MEDIUM
    if any(m in path for m in business.low_priority_paths):
        return Priority.LOW
    return Priority.MEDIUM


def analyze_project(project_path: Path, config: MonitorConfig) -> Project | None:
    """Build a Project for one candidate directory, or None if it opted out."""
    if (project_path / OPT_OUT_MARKER).exists():
        logger.debug(f"Skipping {project_path.name} (opted out)")
        return None

    kind, markers = classify_project_type(project_path)
    return Project(
        name=project_path.name,
        path=project_path,
        type=kind,
        priority=determine_priority(project_path.name, project_path, config.business),
        has_git=(project_path / VCS_DIR).exists(),
        markers=markers,
    )


def discover_projects(config: MonitorConfig, cwd: str | Path | None = None) -> list[Project]:
    """Enumerate immediate subdirectories of every configured root.

    Hidden directories, excluded names and opted-out directories are skipped.
    A directory that cannot be read is logged and skipped. When two roots
    contain the same project name, the first one found is kept.

    Args:
        config: Monitor configuration
        cwd: Working directory used when no roots are configured

    Returns:
        Projects in discovery order
    """
    excluded = set(config.directories.exclude)
    projects: dict[str, Project] = {}

    for root in config.project_roots(cwd):
        try:
            entries = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.warning(f"Cannot read project root {root}: {e}")
            continue

        for entry in entries:
            name = entry.name
            if name.startswith(".") or name in excluded:
                continue
            try:
                if not entry.is_dir():
                    continue
                project = analyze_project(entry.resolve(), config)
            except OSError as e:
                logger.warning(f"Error analyzing {name}: {e}")
                continue

            if project is None:
                continue
            if name in projects:
                logger.warning(f"Duplicate project name {name} at {entry}, keeping {projects[name].path}")
                continue
            projects[name] = project
            logger.debug(f"Registered project: {name} ({project.type}, {project.priority.value})")

    logger.info(f"Discovered {len(projects)} projects")
    return list(projects.values())
