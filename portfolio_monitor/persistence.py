"""Append-only snapshot store on the local filesystem.

Layout::

    {data_dir}/{project}/{kind}-{epoch_ms}.json

Files are written atomically (temp+rename) and never overwritten. Retention
is left to external tooling.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from portfolio_monitor.constants import SNAPSHOT_ACTIVITY, SNAPSHOT_ALERTS, SNAPSHOT_HEALTH
from portfolio_monitor.logging import get_logger

logger = get_logger("persistence")

SNAPSHOT_KINDS = (SNAPSHOT_HEALTH, SNAPSHOT_ACTIVITY, SNAPSHOT_ALERTS)


def atomic_write_text(target: Path, content: str) -> None:
    """Write text to target via a temp file in the same directory.

    Raises:
        OSError: If the directory cannot be created or the write fails
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.replace(tmp_path, str(target))
    except OSError:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class SnapshotStore:
    """Writes one JSON file per event under a project directory."""

    def __init__(self, data_dir: str | Path, clock_ms: Callable[[], int] = _epoch_ms) -> None:
        self.data_dir = Path(data_dir)
        self._clock_ms = clock_ms
        self._lock = threading.Lock()

    def project_dir(self, project: str) -> Path:
        return self.data_dir / project

    def save(self, project: str, kind: str, payload: dict[str, Any]) -> Path | None:
        """Persist one snapshot.

        Args:
            project: Project name (directory under the data root)
            kind: One of health, activity or alerts
            payload: JSON-serializable data

        Returns:
            Path written, or None if the write failed
        """
        if kind not in SNAPSHOT_KINDS:
            raise ValueError(f"Unknown snapshot kind: {kind}")

        directory = self.project_dir(project)
        with self._lock:
            try:
                directory.mkdir(parents=True, exist_ok=True)
                stamp = self._clock_ms()
                target = directory / f"{kind}-{stamp}.json"
                while target.exists():
                    stamp += 1
                    target = directory / f"{kind}-{stamp}.json"
                atomic_write_text(target, json.dumps(payload, indent=2, default=str))
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Failed to persist {kind} snapshot: {e}", extra={"project": project})
                return None

        logger.debug(f"Saved {target.name}", extra={"project": project})
        return target

    def list(self, project: str, kind: str | None = None) -> list[Path]:
        """Snapshot files of a project, oldest first."""
        directory = self.project_dir(project)
        if not directory.is_dir():
            return []
        pattern = f"{kind}-*.json" if kind else "*-*.json"
        return sorted(directory.glob(pattern), key=lambda p: int(p.stem.rsplit("-", 1)[-1]))

    def latest(self, project: str, kind: str) -> dict[str, Any] | None:
        """Load the newest snapshot of a kind, if any."""
        files = self.list(project, kind)
        if not files:
            return None
        try:
            return json.loads(files[-1].read_text())  # type: ignore[no-any-return]
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {files[-1]}: {e}")
            return None
