"""Tests for the filesystem and documentation stages."""

import os
import time
from pathlib import Path

import pytest

from portfolio_monitor.config import DocumentationConfig
from portfolio_monitor.filesystem import (
    SECONDS_PER_DAY,
    analyze_documentation,
    analyze_filesystem,
    count_recent_files,
    documentation_score,
)


def touch(path: Path, age_days: float = 0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x")
    if age_days:
        stamp = time.time() - age_days * SECONDS_PER_DAY
        os.utime(path, (stamp, stamp))
    return path


class TestCountRecentFiles:
    """Tests for the recent-file walk."""

    def test_counts_only_recent(self, tmp_path):
        touch(tmp_path / "new.py")
        touch(tmp_path / "src" / "also_new.py")
        touch(tmp_path / "old.py", age_days=30)

        assert count_recent_files(tmp_path, time.time() - 7 * SECONDS_PER_DAY) == 2

    def test_prunes_hidden_and_dependency_dirs(self, tmp_path):
        touch(tmp_path / ".git" / "index")
        touch(tmp_path / "node_modules" / "pkg" / "index.js")
        touch(tmp_path / "__pycache__" / "mod.pyc")
        touch(tmp_path / "dist" / "bundle.js")
        touch(tmp_path / "build" / "out.o")
        touch(tmp_path / "app.py")

        assert count_recent_files(tmp_path, time.time() - SECONDS_PER_DAY) == 1

    def test_missing_root(self, tmp_path):
        assert count_recent_files(tmp_path / "missing", 0) == 0


class TestAnalyzeFilesystem:
    """Tests for analyze_filesystem."""

    def test_markers_and_notes(self, tmp_path):
        touch(tmp_path / "package.json")
        touch(tmp_path / "Makefile")
        touch(tmp_path / "CLAUDE.md")
        touch(tmp_path / "trackdown" / "BACKLOG.md")

        facts = analyze_filesystem(tmp_path)

        assert facts.markers == ("package.json", "Makefile")
        assert facts.has_notes is True
        assert facts.has_backlog_dir is True
        assert facts.recently_modified == 4

    def test_reference_time(self, tmp_path):
        touch(tmp_path / "file.txt", age_days=3)
        now = time.time()
        assert analyze_filesystem(tmp_path, recent_days=7, now=now).recently_modified == 1
        assert analyze_filesystem(tmp_path, recent_days=2, now=now).recently_modified == 0

    def test_empty_project(self, tmp_path):
        facts = analyze_filesystem(tmp_path)
        assert facts.markers == ()
        assert facts.has_notes is False
        assert facts.recently_modified == 0


class TestDocumentationScore:
    """Tests for the fixed-weight documentation score."""

    @pytest.mark.parametrize(
        "flags, expected",
        [
            ((True, True, True, True), 100),
            ((True, False, False, True), 50),
            ((False, True, True, False), 50),
            ((False, False, False, False), 0),
            ((True, True, False, True), 75),
        ],
    )
    def test_weights(self, flags, expected):
        assert documentation_score(*flags) == expected


class TestAnalyzeDocumentation:
    """Tests for analyze_documentation."""

    def test_complete_layout(self, tmp_path):
        touch(tmp_path / "README.md")
        touch(tmp_path / "docs" / "CLAUDE.md")
        touch(tmp_path / "trackdown" / "BACKLOG.md")

        facts = analyze_documentation(tmp_path)

        assert facts.has_readme is True
        assert facts.has_notes is True
        assert facts.has_backlog is True
        assert facts.has_proper_structure is True
        assert facts.documentation_score == 100

    def test_loose_markdown_breaks_structure(self, tmp_path):
        touch(tmp_path / "README.md")
        touch(tmp_path / "NOTES.md")
        touch(tmp_path / "CHANGELOG.md")

        facts = analyze_documentation(tmp_path)

        assert facts.has_proper_structure is False
        assert facts.loose_docs == ("CHANGELOG.md", "NOTES.md")
        assert facts.documentation_score == 30

    def test_custom_layout(self, tmp_path):
        touch(tmp_path / "readme.rst")
        touch(tmp_path / "TODO.txt")
        docs = DocumentationConfig(readme="readme.rst", notes_files=[], backlog_file="TODO.txt")

        facts = analyze_documentation(tmp_path, docs)

        assert facts.has_readme is True
        assert facts.has_backlog is True
        assert facts.documentation_score == 75

    def test_unreadable_directory_returns_defaults(self, tmp_path):
        facts = analyze_documentation(tmp_path / "missing")
        assert facts.documentation_score == 0
        assert facts.has_readme is False
