"""Structured stage events for issuance and verification.

Every orchestrator and gate transition emits a StageEvent. Events are written
as structured log records and kept in an in-memory ring buffer so operators
can inspect recent activity through /admin/events.
"""

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

log = logging.getLogger("zkpauth.events")


@dataclass
class StageEvent:
    """One stage transition."""

    component: str  # "issuance" or "verification"
    stage: str  # e.g. "create_identity", "revocation_check"
    outcome: str  # "success", "failed", "skipped", "fallback"
    elapsed_ms: int = 0
    detail: str | None = None
    identity: str | None = None  # Subject DID when known
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class EventRecorder:
    """Collects StageEvents into the log stream and a bounded buffer."""

    def __init__(self, max_events: int = 1000, enabled: bool = True):
        """Initialize the recorder.

        Args:
            max_events: Ring buffer capacity
            enabled: Whether events are recorded at all
        """
        self.enabled = enabled
        self.max_events = max_events
        self._buffer: deque[dict] = deque(maxlen=max_events)

    def emit(self, event: StageEvent) -> None:
        """Record a stage event."""
        if not self.enabled:
            return

        self._buffer.append(asdict(event))

        extra: dict[str, Any] = {
            "component": event.component,
            "stage": event.stage,
            "outcome": event.outcome,
            "elapsed_ms": event.elapsed_ms,
        }
        if event.identity:
            extra["identity"] = event.identity

        message = f"{event.component}: {event.stage} {event.outcome}"
        if event.detail:
            message = f"{message} ({event.detail})"

        if event.outcome in ("failed", "fallback"):
            log.warning(message, extra=extra)
        else:
            log.info(message, extra=extra)

    def get_recent_events(
        self,
        limit: int = 100,
        component: str | None = None,
        outcome: str | None = None,
    ) -> list[dict]:
        """Get recent events, newest first.

        Args:
            limit: Max events to return
            component: Only events from this component
            outcome: Only events with this outcome
        """
        events = list(self._buffer)
        events.reverse()

        if component:
            events = [e for e in events if e["component"] == component]
        if outcome:
            events = [e for e in events if e["outcome"] == outcome]

        return events[:limit]

    def get_buffer_stats(self) -> dict:
        return {
            "buffer_size": len(self._buffer),
            "max_buffer_size": self.max_events,
        }


class StageTimer:
    """Measures elapsed time between consecutive stage emissions."""

    def __init__(self) -> None:
        self._started = time.monotonic()

    def lap(self) -> int:
        """Milliseconds since the previous lap (or construction)."""
        now = time.monotonic()
        elapsed = int((now - self._started) * 1000)
        self._started = now
        return elapsed


# Global recorder instance
_event_recorder: EventRecorder | None = None


def get_event_recorder() -> EventRecorder:
    """Get the global event recorder instance."""
    global _event_recorder

    if _event_recorder is None:
        from app.core.config import EVENT_BUFFER_SIZE

        _event_recorder = EventRecorder(max_events=EVENT_BUFFER_SIZE)

    return _event_recorder


def reset_event_recorder() -> None:
    """Reset the global recorder (for testing)."""
    global _event_recorder
    _event_recorder = None
