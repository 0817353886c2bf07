"""Logging for the monitor: colored console lines and rotating JSON files.

Every logger lives under the ``portfolio_monitor`` namespace. Worker code
logs through :func:`get_project_logger`, which stamps each record with the
project name so both outputs can be filtered per project.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

ROOT_LOGGER = "portfolio_monitor"
LOG_FILE_NAME = "portfolio-monitor.log"

# Record attributes carried into JSON lines when present
_EXTRA_FIELDS = ("project", "operation", "attempt", "message_type", "worker_status")

_LEVEL_ALIASES = {"warn": logging.WARNING}

_ANSI_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[34m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


def _component(name: str) -> str:
    """Logger name without the package prefix."""
    return name.removeprefix(f"{ROOT_LOGGER}.") or name


class JsonFormatter(logging.Formatter):
    """One JSON object per line, timestamped from the record itself."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": _component(record.name),
            "message": record.getMessage(),
        }
        entry.update({key: getattr(record, key) for key in _EXTRA_FIELDS if hasattr(record, key)})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored line: time, level, owner and message.

    The owner is the project for worker records and ``master`` otherwise.
    """

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        owner = getattr(record, "project", None) or "master"
        color = _LEVEL_COLORS.get(record.levelno, "")
        line = f"{clock} {color}{record.levelname:<8}{_ANSI_RESET} [{owner}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """Logger for a monitor component, e.g. ``get_logger("coordinator")``."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class ProjectLoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """Adds the bound project to every record, keeping caller extras."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def get_project_logger(project: str, name: str = "worker") -> ProjectLoggerAdapter:
    """Logger adapter bound to one project.

    Args:
        project: Project name recorded on every entry
        name: Component logger the adapter wraps

    Returns:
        ProjectLoggerAdapter
    """
    return ProjectLoggerAdapter(get_logger(name), {"project": project})


def parse_level(level: str) -> int:
    """Map a configured level name (debug, info, warn, error) to a number."""
    name = level.lower()
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(log_dir: str | Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(directory / LOG_FILE_NAME, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(
    level: str = "info",
    log_dir: str | Path | None = None,
    json_output: bool = True,
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Replace the handlers on the package logger.

    Args:
        level: debug, info, warn or error
        log_dir: Directory receiving the rotating JSON log
        json_output: Write JSON lines when ``log_dir`` is set
        console_output: Write colored lines to stderr
        max_bytes: Rotation size of the JSON log
        backup_count: Rotated JSON files kept
    """
    numeric = parse_level(level)
    handlers: list[logging.Handler] = []
    if console_output:
        handlers.append(_console_handler(numeric))
    if log_dir and json_output:
        handlers.append(_file_handler(log_dir, numeric, max_bytes, backup_count))

    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(numeric)
    package_logger.handlers = handlers
    package_logger.propagate = False


# Console logging until the CLI applies the configured settings
setup_logging(console_output=True, json_output=False)
