"""
Event store for querying pipeline events by command_id.

In-memory, bounded. Events are observability only; nothing in the pipeline
reads them back to make decisions.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


ENVELOPE_FIELDS = ("ts", "command_id", "component", "event_type", "severity", "correlation_id", "pii")


@dataclass
class StoredEvent:
    """A pipeline event stored in memory."""

    ts: datetime
    command_id: str
    component: str
    event_type: str
    severity: str
    correlation_id: str
    pii: Dict[str, Any]
    payload: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "ts": self.ts.isoformat(),
            "command_id": self.command_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
            "correlation_id": self.correlation_id,
            "pii": self.pii,
        }
        result.update(self.payload)
        return result


class EventStore:
    """
    In-memory event store.

    Stores events in a bounded deque (FIFO) to prevent unbounded memory growth.
    """

    def __init__(self, max_events: int = 5000):
        self._events: deque[StoredEvent] = deque(maxlen=max_events)
        self._max_events = max_events

    def store(self, event: Dict[str, Any]) -> None:
        """
        Store an event envelope.

        Args:
            event: event dict (ts, command_id, component, event_type, severity, correlation_id, pii + payload)
        """
        ts_str = event.get("ts")
        if isinstance(ts_str, str):
            ts = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
        else:
            ts = datetime.now(timezone.utc)

        command_id = event.get("command_id", "")
        stored = StoredEvent(
            ts=ts,
            command_id=command_id,
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            correlation_id=event.get("correlation_id", command_id),
            pii=event.get("pii", {"contains_pii": False, "fields": [], "handling": "none"}),
            payload={k: v for k, v in event.items() if k not in ENVELOPE_FIELDS},
        )

        self._events.append(stored)

    def query(
        self,
        command_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query events with optional filters.

        Returns:
            List of event dicts, oldest first
        """
        results: List[StoredEvent] = []

        for event in self._events:
            if command_id and event.command_id != command_id:
                continue
            if event_type and event.event_type != event_type:
                continue
            if component and event.component != component:
                continue
            if since and event.ts < since:
                continue
            if until and event.ts > until:
                continue

            results.append(event)

            if limit and len(results) >= limit:
                break

        return [e.to_dict() for e in results]

    def by_command(self, command_id: str, **filters: Any) -> List[Dict[str, Any]]:
        """Events of one voice command, oldest first."""
        return self.query(command_id=command_id, **filters)

    def command_summary(self, command_id: str) -> Optional[Dict[str, Any]]:
        """
        Condensed view of one command: how far it got and how it ended.

        Returns None when nothing was recorded for the command_id.
        """
        events = [e for e in self._events if e.command_id == command_id]
        if not events:
            return None

        final = next(
            (e for e in reversed(events) if e.event_type in ("command.completed", "command.cancelled")),
            None,
        )
        if final is None:
            outcome = "in_progress"
        elif final.event_type == "command.cancelled":
            outcome = "cancelled"
        else:
            outcome = final.payload.get("status", "unknown")

        rejected = next((e for e in events if e.event_type == "intent.rejected"), None)
        return {
            "command_id": command_id,
            "outcome": outcome,
            "rejection_kind": rejected.payload.get("kind") if rejected else None,
            "first_ts": events[0].ts.isoformat(),
            "last_ts": events[-1].ts.isoformat(),
            "duration_ms": int((events[-1].ts - events[0].ts).total_seconds() * 1000),
            "event_count": len(events),
        }

    def clear(self) -> None:
        self._events.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        return {
            "total_events": len(self._events),
            "max_events": self._max_events,
            "oldest_event_ts": self._events[0].ts.isoformat() if self._events else None,
            "newest_event_ts": self._events[-1].ts.isoformat() if self._events else None,
        }


# Global event store instance
event_store = EventStore()
