"""Filesystem and documentation stages of the project scan."""

from __future__ import annotations

import os
import time
from pathlib import Path

from portfolio_monitor.config import DocumentationConfig
from portfolio_monitor.constants import (
    DEFAULT_RECENT_DAYS,
    DOC_WEIGHT_BACKLOG,
    DOC_WEIGHT_NOTES,
    DOC_WEIGHT_README,
    DOC_WEIGHT_STRUCTURE,
    PROJECT_TYPE_MARKERS,
    PRUNED_WALK_DIRS,
)
from portfolio_monitor.logging import get_logger
from portfolio_monitor.types import DocumentationFacts, FilesystemFacts

logger = get_logger("filesystem")

SECONDS_PER_DAY = 24 * 60 * 60


def count_recent_files(root: str | Path, since: float) -> int:
    """Count files under root modified after ``since`` (epoch seconds).

    Hidden directories and common build/dependency directories are pruned.
    Unreadable directories and files are skipped silently.
    """
    count = 0
    for dirpath, dirnames, filenames in os.walk(root, onerror=lambda _e: None):
        dirnames[:] = [d for d in dirnames if not d.startswith(".") and d not in PRUNED_WALK_DIRS]
        for name in filenames:
            try:
                if os.stat(os.path.join(dirpath, name)).st_mtime > since:
                    count += 1
            except OSError:
                continue
    return count


def analyze_filesystem(
    project_path: str | Path,
    docs: DocumentationConfig | None = None,
    recent_days: int = DEFAULT_RECENT_DAYS,
    now: float | None = None,
) -> FilesystemFacts:
    """Collect marker files and recent file activity for a project.

    Args:
        project_path: Project root
        docs: Expected documentation layout
        recent_days: Size of the recent-activity window
        now: Reference epoch seconds, defaults to the current time

    Returns:
        FilesystemFacts; empty facts if the project cannot be read
    """
    root = Path(project_path)
    docs = docs or DocumentationConfig()
    try:
        markers = tuple(name for name, _ in PROJECT_TYPE_MARKERS if (root / name).exists())
        backlog_dir = Path(docs.backlog_file).parent
        since = (now if now is not None else time.time()) - recent_days * SECONDS_PER_DAY
        return FilesystemFacts(
            recently_modified=count_recent_files(root, since),
            markers=tuple(dict.fromkeys(markers)),
            has_notes=any((root / name).exists() for name in docs.notes_files),
            has_backlog_dir=str(backlog_dir) != "." and (root / backlog_dir).is_dir(),
        )
    except OSError as e:
        logger.warning(f"File system analysis error for {root}: {e}")
        return FilesystemFacts()


def documentation_score(has_readme: bool, has_notes: bool, has_backlog: bool, has_proper_structure: bool) -> int:
    """Sum of fixed weights for readme, notes, backlog and structure."""
    score = 0
    if has_readme:
        score += DOC_WEIGHT_README
    if has_notes:
        score += DOC_WEIGHT_NOTES
    if has_backlog:
        score += DOC_WEIGHT_BACKLOG
    if has_proper_structure:
        score += DOC_WEIGHT_STRUCTURE
    return score


def analyze_documentation(project_path: str | Path, docs: DocumentationConfig | None = None) -> DocumentationFacts:
    """Check documentation presence and layout.

    Markdown files in the project root other than the readme count as loose
    docs and break the expected structure.
    """
    root = Path(project_path)
    docs = docs or DocumentationConfig()
    try:
        has_readme = (root / docs.readme).is_file()
        has_notes = any((root / name).is_file() for name in docs.notes_files)
        has_backlog = (root / docs.backlog_file).is_file()
        loose = tuple(
            sorted(p.name for p in root.iterdir() if p.is_file() and p.suffix == ".md" and p.name != docs.readme)
        )
    except OSError as e:
        logger.warning(f"Documentation analysis error for {root}: {e}")
        return DocumentationFacts()

    structured = not loose
    return DocumentationFacts(
        has_readme=has_readme,
        has_notes=has_notes,
        has_backlog=has_backlog,
        has_proper_structure=structured,
        loose_docs=loose,
        documentation_score=documentation_score(has_readme, has_notes, has_backlog, structured),
    )
