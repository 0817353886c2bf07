"""Timeout-bounded git invocation for a single repository."""

import subprocess
from pathlib import Path

from portfolio_monitor.constants import VCS_DIR
from portfolio_monitor.exceptions import GitError
from portfolio_monitor.logging import get_logger

logger = get_logger("git.base")


class GitRunner:
    """Runs git against one repository and maps failures to :class:`GitError`.

    Every invocation carries a timeout so a hung remote cannot stall a
    worker's scan cadence.
    """

    def __init__(self, repo_path: str | Path = ".", timeout: int = 30) -> None:
        """Bind the runner to a repository.

        Args:
            repo_path: Project directory containing ``.git``
            timeout: Seconds allowed per git invocation

        Raises:
            GitError: If ``repo_path`` has no ``.git`` entry
        """
        self.repo_path = Path(repo_path).resolve()
        self.timeout = timeout
        # worktrees and submodules use a .git file instead of a directory
        if not (self.repo_path / VCS_DIR).exists():
            raise GitError(f"Not a git repository: {self.repo_path}", cwd=str(self.repo_path))

    def git(self, *args: str, check: bool = True, timeout: int | None = None) -> subprocess.CompletedProcess[str]:
        """Invoke ``git -C <repo> <args>``.

        Args:
            *args: Subcommand and its arguments
            check: Raise on a non-zero exit status
            timeout: Override for this call only

        Returns:
            The finished process with text stdout and stderr

        Raises:
            GitError: On timeout, missing git binary, or a failing exit status with ``check``
        """
        seconds = timeout or self.timeout
        argv = ["git", "-C", str(self.repo_path), *args]
        where = str(self.repo_path)
        logger.debug(f"git {' '.join(args)} ({where})")

        try:
            return subprocess.run(argv, capture_output=True, text=True, check=check, timeout=seconds)
        except subprocess.TimeoutExpired as e:
            raise GitError(
                f"git {args[0] if args else ''} timed out after {seconds}s",
                command=" ".join(argv),
                exit_code=-1,
                cwd=where,
            ) from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise GitError(f"git {args[0]} failed: {detail}", command=" ".join(argv), exit_code=e.returncode, cwd=where) from e
        except FileNotFoundError as e:
            raise GitError("git executable not found", command=" ".join(argv), cwd=where) from e

    def current_branch(self) -> str:
        """Name of the checked-out branch, or ``HEAD`` when detached."""
        return self.git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def has_ref(self, ref: str) -> bool:
        """Whether ``ref`` resolves to an object."""
        return self.git("rev-parse", "--verify", "--quiet", ref, check=False).returncode == 0
