"""Portfolio monitor constants and enumerations."""

from enum import Enum


class Priority(Enum):
    """Business-importance tier of a project."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class HealthStatus(Enum):
    """Coarse project health state."""

    HEALTHY = "healthy"
    ATTENTION = "attention"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class AlertSeverity(Enum):
    """Alert severity levels."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class WorkerStatus(Enum):
    """Lifecycle of a project worker as seen by the coordinator."""

    STARTING = "starting"
    RUNNING = "running"
    UNHEALTHY = "unhealthy"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class RemoteStatus(Enum):
    """Synchronization state of the local checkout against its remote."""

    NEEDS_PUSH = "needs_push"
    NEEDS_PULL = "needs_pull"
    UNCOMMITTED_CHANGES = "uncommitted_changes"
    UP_TO_DATE = "up_to_date"
    UNKNOWN = "unknown"


class RevenueImpact(Enum):
    """Revenue-impact classification of a project."""

    DIRECT_REVENUE = "DIRECT_REVENUE"
    STRATEGIC_INVESTMENT = "STRATEGIC_INVESTMENT"
    COST_SAVINGS = "COST_SAVINGS"


class Velocity(Enum):
    """Development velocity bucket."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


class BusinessRisk(Enum):
    """Business risk level derived from weighted conditions."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


class MessageType(Enum):
    """Worker/coordinator message kinds."""

    # worker -> coordinator
    HEALTH_UPDATE = "health_update"
    ACTIVITY_REPORT = "activity_report"
    ALERT = "alert"
    ERROR = "error"
    HEALTH_RESPONSE = "health_response"
    # coordinator -> worker
    HEALTH_CHECK = "health_check"
    FORCE_SCAN = "force_scan"
    SHUTDOWN = "shutdown"


# Severity rank used for monotonic escalation (unknown never participates)
STATUS_RANK = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.ATTENTION: 1,
    HealthStatus.CRITICAL: 2,
}

# Scan cadence per priority, in seconds
SCAN_INTERVALS = {
    Priority.HIGH: 2 * 60,
    Priority.MEDIUM: 5 * 60,
    Priority.LOW: 15 * 60,
}

# Ecosystem marker files, checked in order; first match wins
PROJECT_TYPE_MARKERS: tuple[tuple[str, str], ...] = (
    ("package.json", "nodejs"),
    ("pyproject.toml", "python"),
    ("requirements.txt", "python"),
    ("Cargo.toml", "rust"),
    ("go.mod", "go"),
    ("composer.json", "php"),
    ("Gemfile", "ruby"),
    ("pom.xml", "java"),
    ("build.gradle", "java"),
    ("CMakeLists.txt", "cpp"),
    ("Makefile", "make"),
)

OPT_OUT_MARKER = ".no-monitor"
VCS_DIR = ".git"

# Directories pruned from the recent-file walk
PRUNED_WALK_DIRS = frozenset({"node_modules", "__pycache__", "dist", "build"})

DEFAULT_EXCLUDED_DIRS = [
    "node_modules",
    "dist",
    "build",
    "temp",
    "backup",
    "archive",
    "out",
    "coverage",
]

# Snapshot kinds written by the coordinator
SNAPSHOT_HEALTH = "health"
SNAPSHOT_ACTIVITY = "activity"
SNAPSHOT_ALERTS = "alerts"

EXECUTIVE_SUMMARY_JSON = "executive-summary.json"
EXECUTIVE_SUMMARY_MD = "executive-summary.md"

# Portfolio score weights per health status
HEALTH_SCORE_WEIGHTS = {
    HealthStatus.HEALTHY: 100,
    HealthStatus.ATTENTION: 60,
    HealthStatus.CRITICAL: 20,
    HealthStatus.UNKNOWN: 0,
}

# Documentation score weights
DOC_WEIGHT_README = 30
DOC_WEIGHT_NOTES = 25
DOC_WEIGHT_BACKLOG = 25
DOC_WEIGHT_STRUCTURE = 20

DEFAULT_MAX_WORKERS = 20
DEFAULT_MAX_CONCURRENT_SCANS = 5
DEFAULT_HEALTH_CHECK_SECONDS = 60
DEFAULT_REPORT_MINUTES = 30
DEFAULT_STALE_DAYS = 14
DEFAULT_RECENT_DAYS = 7
DEFAULT_REMOTE_TIMEOUT_SECONDS = 10
DEFAULT_BREAKER_THRESHOLD = 5
DEFAULT_BREAKER_WINDOW_SECONDS = 60.0
