"""In-process event fan-out for activity and alert aggregation.

Subscribers receive ``(event_type, data)``. A failing subscriber is logged
and never affects the coordinator or other subscribers.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from portfolio_monitor.logging import get_logger

logger = get_logger("event_emitter")

Listener = Callable[[str, dict[str, Any]], None]

EVENT_ACTIVITY = "activity"
EVENT_ALERT = "alert"
EVENT_WORKER_RESTARTED = "worker_restarted"
EVENT_REPORT_GENERATED = "report_generated"


class EventEmitter:
    """Synchronous publish/subscribe hub.

    A listener registered with ``event_types`` only hears those events; one
    registered without hears everything.
    """

    def __init__(self) -> None:
        self._listeners: dict[Listener, frozenset[str] | None] = {}
        self._guard = threading.Lock()

    def subscribe(self, listener: Listener, event_types: Iterable[str] | None = None) -> None:
        """Register a listener.

        Args:
            listener: Called as ``listener(event_type, data)``
            event_types: Restrict delivery to these event types
        """
        topics = frozenset(event_types) if event_types is not None else None
        with self._guard:
            self._listeners[listener] = topics
            count = len(self._listeners)
        logger.debug(f"Listener registered ({count} active)")

    def unsubscribe(self, listener: Listener) -> None:
        with self._guard:
            removed = self._listeners.pop(listener, False) is not False
        if removed:
            logger.debug("Listener removed")

    def emit(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        """Publish one event, stamping it with the current UTC time."""
        payload: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat(), **(data or {})}
        with self._guard:
            targets = [fn for fn, topics in self._listeners.items() if topics is None or event_type in topics]

        for listener in targets:
            try:
                listener(event_type, payload)
            except Exception as e:  # noqa: BLE001 listener errors stay with the listener
                logger.warning(f"Listener for {event_type!r} raised: {e}")
        logger.debug(f"{event_type} delivered to {len(targets)} listener(s)")

    @property
    def subscriber_count(self) -> int:
        with self._guard:
            return len(self._listeners)
