"""Portfolio monitor - supervision and scoring for a portfolio of repositories.

Discovers projects, inspects each one on a priority-driven cadence and keeps
a health and business-risk picture of the whole portfolio current.
"""

__version__ = "0.1.0"

from portfolio_monitor.config import MonitorConfig
from portfolio_monitor.constants import AlertSeverity, HealthStatus, Priority, WorkerStatus
from portfolio_monitor.context import MonitorContext
from portfolio_monitor.coordinator import Coordinator
from portfolio_monitor.exceptions import ApplicationError
from portfolio_monitor.resilience import ErrorHandler, OperationContext
from portfolio_monitor.worker import ProjectWorker, scan_interval_for

__all__ = [
    "__version__",
    "AlertSeverity",
    "HealthStatus",
    "Priority",
    "WorkerStatus",
    "ApplicationError",
    "MonitorConfig",
    "MonitorContext",
    # Engine
    "Coordinator",
    "ProjectWorker",
    "scan_interval_for",
    # Resilience
    "ErrorHandler",
    "OperationContext",
]
