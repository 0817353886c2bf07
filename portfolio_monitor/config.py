"""Portfolio monitor configuration management using Pydantic."""

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from portfolio_monitor.constants import (
    DEFAULT_BREAKER_THRESHOLD,
    DEFAULT_BREAKER_WINDOW_SECONDS,
    DEFAULT_EXCLUDED_DIRS,
    DEFAULT_HEALTH_CHECK_SECONDS,
    DEFAULT_MAX_CONCURRENT_SCANS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_RECENT_DAYS,
    DEFAULT_REMOTE_TIMEOUT_SECONDS,
    DEFAULT_REPORT_MINUTES,
    DEFAULT_STALE_DAYS,
)
from portfolio_monitor.exceptions import ConfigurationError

CONFIG_FILE_CANDIDATES = (
    "portfolio-monitor.yml",
    "portfolio-monitor.yaml",
    ".portfolio-monitor.yml",
    ".portfolio-monitor.yaml",
)


class DirectoriesConfig(BaseModel):
    """Which directories are searched for projects."""

    include: list[str] = Field(default_factory=list)
    scan_current: bool = True
    exclude: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))


class MonitoringConfig(BaseModel):
    """Worker pool and cadence settings."""

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, le=200)
    max_concurrent_scans: int = Field(default=DEFAULT_MAX_CONCURRENT_SCANS, ge=1, le=20)
    health_check_interval_seconds: float = Field(default=DEFAULT_HEALTH_CHECK_SECONDS, gt=0)
    report_interval_minutes: float = Field(default=DEFAULT_REPORT_MINUTES, gt=0)
    max_missed_health_checks: int = Field(default=3, ge=1, le=100)
    restart_pause_seconds: float = Field(default=1.0, ge=0)
    shutdown_grace_seconds: float = Field(default=10.0, ge=0)
    stale_days: int = Field(default=DEFAULT_STALE_DAYS, ge=1)
    enable_issue_tracking: bool = False
    repeat_alerts: bool = False


class BusinessConfig(BaseModel):
    """Priority and revenue classification rules.

    Name lists are empty by default; path markers are substrings matched
    against the absolute project path.
    """

    high_priority_projects: list[str] = Field(default_factory=list)
    medium_priority_projects: list[str] = Field(default_factory=list)
    high_priority_paths: list[str] = Field(default_factory=lambda: ["/Clients/"])
    low_priority_paths: list[str] = Field(default_factory=lambda: ["/docs/", "/Github/", "/_archive/"])
    revenue_projects: list[str] = Field(default_factory=list)
    strategic_projects: list[str] = Field(default_factory=list)
    revenue_paths: list[str] = Field(default_factory=lambda: ["/Clients/"])


class GitSettings(BaseModel):
    """Git inspection settings."""

    default_branches: list[str] = Field(default_factory=lambda: ["main", "master"])
    remote: str = "origin"
    remote_timeout_seconds: int = Field(default=DEFAULT_REMOTE_TIMEOUT_SECONDS, ge=1, le=120)
    command_timeout_seconds: int = Field(default=30, ge=1, le=600)
    enable_remote_check: bool = True
    recent_days: int = Field(default=DEFAULT_RECENT_DAYS, ge=1, le=365)


class DocumentationConfig(BaseModel):
    """Expected documentation layout of a project."""

    readme: str = "README.md"
    notes_files: list[str] = Field(default_factory=lambda: ["CLAUDE.md", "docs/CLAUDE.md"])
    backlog_file: str = "trackdown/BACKLOG.md"


class DataConfig(BaseModel):
    """Snapshot and report locations."""

    directory: str = "data"
    reports_directory: str = "reports"


class IssueQueryConfig(BaseModel):
    """Issue listing query options."""

    state: str = Field(default="open", pattern="^(open|closed|all)$")
    labels: list[str] = Field(default_factory=list)
    sort: str = Field(default="updated", pattern="^(created|updated|comments)$")
    direction: str = Field(default="desc", pattern="^(asc|desc)$")
    per_page: int = Field(default=30, ge=1, le=100)


class GitHubConfig(BaseModel):
    """Issue tracker (GitHub REST API) settings."""

    token: str | None = None
    base_url: str = "https://api.github.com"
    user_agent: str = "portfolio-monitor"
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    issues: IssueQueryConfig = Field(default_factory=IssueQueryConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="info", pattern="^(debug|info|warn|error)$")
    directory: str | None = None
    json_output: bool = True
    console: bool = True


class ResilienceConfig(BaseModel):
    """Circuit breaker settings."""

    failure_threshold: int = Field(default=DEFAULT_BREAKER_THRESHOLD, ge=1, le=100)
    window_seconds: float = Field(default=DEFAULT_BREAKER_WINDOW_SECONDS, gt=0)


class MonitorConfig(BaseModel):
    """Complete portfolio monitor configuration."""

    directories: DirectoriesConfig = Field(default_factory=DirectoriesConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    business: BusinessConfig = Field(default_factory=BusinessConfig)
    git: GitSettings = Field(default_factory=GitSettings)
    documentation: DocumentationConfig = Field(default_factory=DocumentationConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    @classmethod
    def find_config_file(cls, working_dir: str | Path = ".") -> Path | None:
        """Return the first existing default config file, if any."""
        base = Path(working_dir)
        for name in CONFIG_FILE_CANDIDATES:
            candidate = base / name
            if candidate.is_file():
                return candidate
        return None

    @classmethod
    def load(cls, config_path: str | Path | None = None, working_dir: str | Path = ".") -> "MonitorConfig":
        """Load configuration from YAML file and environment.

        Args:
            config_path: Explicit config file. Defaults to the first match of
                CONFIG_FILE_CANDIDATES in working_dir.
            working_dir: Directory searched for default config files

        Returns:
            MonitorConfig instance

        Raises:
            ConfigurationError: If the file is missing, unparsable, or invalid
        """
        if config_path is not None:
            path: Path | None = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}", config_key="path")
        else:
            path = cls.find_config_file(working_dir)

        data: dict[str, Any] = {}
        if path is not None:
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_key="path") from e
            if not isinstance(data, dict):
                raise ConfigurationError(f"Config root must be a mapping: {path}", config_key="path")

        apply_env_overrides(data)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorConfig":
        """Create configuration from dictionary.

        Raises:
            ConfigurationError: If the data fails schema validation
        """
        try:
            return cls(**data)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            key = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(
                f"Configuration validation error: {first.get('msg', str(e))}",
                config_key=key or None,
                details={"errors": len(e.errors())},
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

    def project_roots(self, cwd: str | Path | None = None) -> list[Path]:
        """Resolve the directories whose children are candidate projects."""
        if self.directories.include:
            return [Path(p).expanduser().resolve() for p in self.directories.include]
        if self.directories.scan_current:
            return [Path(cwd or os.getcwd()).resolve()]
        return []

    @property
    def data_dir(self) -> Path:
        return Path(self.data.directory)

    @property
    def reports_dir(self) -> Path:
        return Path(self.data.reports_directory)


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay supported environment variables onto raw config data."""
    level = os.environ.get("PORTFOLIO_MONITOR_LOG_LEVEL")
    if level:
        data.setdefault("logging", {})["level"] = level.lower()

    token = os.environ.get("GITHUB_TOKEN")
    if token:
        github = data.setdefault("github", {})
        github.setdefault("token", token)

    data_dir = os.environ.get("PORTFOLIO_MONITOR_DATA_DIR")
    if data_dir:
        data.setdefault("data", {})["directory"] = data_dir

    return data
