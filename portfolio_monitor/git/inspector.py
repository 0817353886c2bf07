"""Source-control stage of the project scan."""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from portfolio_monitor.config import GitSettings
from portfolio_monitor.constants import VCS_DIR, RemoteStatus
from portfolio_monitor.exceptions import GitError
from portfolio_monitor.git.base import GitRunner
from portfolio_monitor.logging import get_project_logger
from portfolio_monitor.resilience import ErrorHandler
from portfolio_monitor.types import BranchInfo, CommitInfo, GitFacts, utc_now

BRANCH_FORMAT = "%(refname:short)|%(committerdate:iso8601-strict)|%(authorname)"
COMMIT_FORMAT = "%H|%an|%aI|%s"


def parse_git_date(value: str) -> datetime | None:
    """Parse a strict ISO-8601 date printed by git."""
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def days_since(value: str | datetime | None, now: datetime | None = None) -> int | None:
    """Whole days elapsed since a timestamp, rounded up.

    Args:
        value: ISO-8601 string or aware datetime
        now: Reference time, defaults to the current UTC time

    Returns:
        Days (ceiling) or None if the timestamp is missing or unparsable
    """
    moment = parse_git_date(value) if isinstance(value, str) else value
    if moment is None:
        return None
    elapsed = (now or utc_now()) - moment
    return max(0, math.ceil(elapsed / timedelta(days=1)))


class GitInspector:
    """Collects source-control facts for one project.

    Each sub-step degrades to a default on GitError so a single failing
    command never aborts the stage.
    """

    def __init__(
        self,
        project_path: str | Path,
        settings: GitSettings | None = None,
        error_handler: ErrorHandler | None = None,
        project: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.project_path = Path(project_path)
        self.settings = settings or GitSettings()
        self.error_handler = error_handler or ErrorHandler()
        self.project = project or self.project_path.name
        self._clock = clock
        self._log = get_project_logger(self.project, "git.inspector")

    def collect(self) -> GitFacts:
        """Run every source-control sub-step.

        Returns:
            GitFacts; ``has_git`` is False when no VCS directory exists
        """
        if not (self.project_path / VCS_DIR).exists():
            return GitFacts(has_git=False)

        try:
            runner = GitRunner(self.project_path, timeout=self.settings.command_timeout_seconds)
        except GitError as e:
            self._log.warning(f"Git analysis error: {e}")
            return GitFacts(has_git=False)

        now = self._clock()
        current_branch = self._current_branch(runner)
        default_branch, ahead, behind = self._commit_status(runner)
        uncommitted = self._uncommitted_changes(runner)
        branches = self._branches(runner, now)
        recent = self._recent_commits(runner)
        last_commit = self._last_commit_date(runner)
        remote_url = self._remote_url(runner)
        remote_status = self._remote_status(runner, behind, uncommitted)

        return GitFacts(
            has_git=True,
            current_branch=current_branch,
            default_branch=default_branch,
            commits_ahead=ahead,
            commits_behind=behind,
            uncommitted_changes=uncommitted,
            branches=branches,
            recent_commits=recent,
            last_commit_date=last_commit,
            days_since_commit=days_since(last_commit, now),
            remote_url=remote_url,
            remote_status=remote_status,
        )

    def _current_branch(self, runner: GitRunner) -> str | None:
        try:
            return runner.current_branch()
        except GitError as e:
            self._log.warning(f"Could not get current branch: {e}")
            return None

    def _fetch(self, runner: GitRunner) -> None:
        remote = self.settings.remote

        def fetch() -> None:
            runner.git("fetch", remote, "--quiet", timeout=self.settings.remote_timeout_seconds)

        try:
            self.error_handler.safe_git_operation(fetch, f"fetch {remote}", str(self.project_path))
        except Exception as e:
            self._log.debug(f"Could not fetch from remote: {e}")

    def _commit_status(self, runner: GitRunner) -> tuple[str | None, int, int]:
        """Resolve the remote default branch and count ahead/behind commits."""
        if self.settings.enable_remote_check:
            self._fetch(runner)

        remote = self.settings.remote
        try:
            default_branch = next(
                (b for b in self.settings.default_branches if runner.has_ref(f"{remote}/{b}")),
                None,
            )
        except GitError as e:
            self._log.warning(f"Error getting commit status: {e}")
            return None, 0, 0
        if default_branch is None:
            self._log.warning("Could not find main/master branch")
            return None, 0, 0

        target = f"{remote}/{default_branch}"
        ahead = self._count("rev-list", "--count", "HEAD", f"^{target}", runner=runner, label="ahead")
        behind = self._count("rev-list", "--count", target, "^HEAD", runner=runner, label="behind")
        return default_branch, ahead, behind

    def _count(self, *args: str, runner: GitRunner, label: str) -> int:
        try:
            return int(runner.git(*args).stdout.strip() or 0)
        except (GitError, ValueError) as e:
            self._log.debug(f"Could not get commits {label}: {e}")
            return 0

    def _uncommitted_changes(self, runner: GitRunner) -> int:
        try:
            output = runner.git("status", "--porcelain").stdout
        except GitError as e:
            self._log.warning(f"Could not get git status: {e}")
            return 0
        return len([line for line in output.splitlines() if line.strip()])

    def _branches(self, runner: GitRunner, now: datetime) -> tuple[BranchInfo, ...]:
        """List local branches, most recently active first."""
        try:
            output = runner.git("for-each-ref", f"--format={BRANCH_FORMAT}", "refs/heads/").stdout
        except GitError as e:
            self._log.warning(f"Error getting branches: {e}")
            return ()

        branches = []
        for line in output.splitlines():
            if not line.strip():
                continue
            name, _, rest = line.partition("|")
            date, _, author = rest.partition("|")
            branches.append(
                BranchInfo(
                    name=name,
                    last_commit=date or None,
                    last_author=author or None,
                    days_since_activity=days_since(date, now),
                )
            )
        branches.sort(key=lambda b: b.days_since_activity if b.days_since_activity is not None else math.inf)
        return tuple(branches)

    def _recent_commits(self, runner: GitRunner) -> tuple[CommitInfo, ...]:
        since = f"--since={self.settings.recent_days} days ago"
        try:
            output = runner.git("log", since, f"--pretty=format:{COMMIT_FORMAT}").stdout
        except GitError as e:
            # A repository without commits has no HEAD to log
            self._log.warning(f"Error getting recent commits: {e}")
            return ()

        commits = []
        for line in output.splitlines():
            parts = line.split("|", 3)
            if len(parts) == 4:
                commits.append(CommitInfo(hash=parts[0], author=parts[1], date=parts[2], message=parts[3]))
        return tuple(commits)

    def _last_commit_date(self, runner: GitRunner) -> str | None:
        try:
            output = runner.git("log", "-1", "--format=%cI").stdout.strip()
        except GitError as e:
            self._log.debug(f"Could not get last commit date: {e}")
            return None
        return output or None

    def _remote_url(self, runner: GitRunner) -> str | None:
        try:
            result = runner.git("remote", "get-url", self.settings.remote, check=False)
        except GitError as e:
            self._log.debug(f"Could not read remote url: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def _remote_status(self, runner: GitRunner, behind: int, uncommitted: int) -> RemoteStatus:
        """First matching condition wins: push, pull, uncommitted, up to date."""
        try:
            # No upstream configured exits non-zero; that means nothing to push
            result = runner.git("log", "@{u}..", "--oneline", check=False)
        except GitError as e:
            self._log.debug(f"Error checking remote status: {e}")
            return RemoteStatus.UNKNOWN

        unpushed = result.stdout.strip() if result.returncode == 0 else ""
        if unpushed:
            return RemoteStatus.NEEDS_PUSH
        if behind > 0:
            return RemoteStatus.NEEDS_PULL
        if uncommitted > 0:
            return RemoteStatus.UNCOMMITTED_CHANGES
        return RemoteStatus.UP_TO_DATE
