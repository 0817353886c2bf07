"""Git package -- source-control inspection for monitored projects.

Re-exports core classes for convenient access:
    from portfolio_monitor.git import GitInspector, GitRunner
"""

from portfolio_monitor.git.base import GitRunner
from portfolio_monitor.git.inspector import GitInspector, days_since

__all__ = [
    "GitRunner",
    "GitInspector",
    "days_since",
]
