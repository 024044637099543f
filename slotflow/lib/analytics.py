"""
Analytics sinks for workflow events.

Tracking is best-effort: track_event() logs and swallows sink failures
so an analytics outage never interrupts the workflow.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

logger = logging.getLogger(__name__)


SUGGESTION_GENERATED = "suggestion_generated"
SUGGESTION_ACCEPTED = "suggestion_accepted"
SUGGESTION_REJECTED = "suggestion_rejected"
SUGGESTION_REOPENED = "suggestion_reopened"
ERROR_OCCURRED = "error_occurred"
FILTER_APPLIED = "filter_applied"
HISTORY_VIEWED = "history_viewed"
WORKFLOW_CLOSED = "workflow_closed"


class AnalyticsSink(Protocol):
    def track(self, event: str, properties: dict[str, Any]) -> None: ...


class LoggingAnalyticsSink:
    """Writes events to the log. Default when no sink is supplied."""

    def track(self, event: str, properties: dict[str, Any]) -> None:
        logger.info(f"[ANALYTICS] {event} {properties}")


class RecordingAnalyticsSink:
    """Keeps events in memory."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event: str, properties: dict[str, Any]) -> None:
        self.events.append((event, properties))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def track_event(sink: AnalyticsSink | None, event: str, **properties: Any) -> None:
    """Send an event to sink, never raising."""
    if sink is None:
        return

    properties.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    try:
        sink.track(event, properties)
    except Exception as e:
        logger.warning(f"[ANALYTICS] Failed to track '{event}': {e}")
