"""
Event emission and event store tests.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from observability.event_store import EventStore, event_store
from observability.events import EventEmitter, Component, Severity


@pytest.fixture(autouse=True)
def cleanup():
    yield
    event_store.clear()


class TestEventFormat:
    """Envelope written to stdout."""

    def test_required_fields(self, capsys):
        emitter = EventEmitter(Component.PIPELINE)
        emitter.emit(
            event_type="test.event",
            command_id="cmd_123",
            severity=Severity.INFO,
        )

        event = json.loads(capsys.readouterr().out.strip())

        for key in ("ts", "command_id", "component", "event_type", "severity", "correlation_id", "pii"):
            assert key in event

        assert event["command_id"] == "cmd_123"
        assert event["component"] == "pipeline"
        assert event["event_type"] == "test.event"
        assert event["severity"] == "info"

    def test_correlation_id_defaults_to_command_id(self, capsys):
        EventEmitter(Component.DISPATCHER).emit("action.dispatched", command_id="cmd_1")

        event = json.loads(capsys.readouterr().out.strip())
        assert event["correlation_id"] == "cmd_1"

    def test_default_pii_block(self, capsys):
        EventEmitter(Component.PIPELINE).emit("command.received", command_id="cmd_1")

        event = json.loads(capsys.readouterr().out.strip())
        assert event["pii"] == {"contains_pii": False, "fields": [], "handling": "none"}

    def test_extra_fields_are_flattened(self, capsys):
        EventEmitter(Component.INTENT_CLIENT).emit(
            "intent.retry",
            command_id="cmd_1",
            severity=Severity.WARN,
            attempt=1,
            backoff_ms=500,
        )

        event = json.loads(capsys.readouterr().out.strip())
        assert event["attempt"] == 1
        assert event["backoff_ms"] == 500
        assert event["severity"] == "warn"

    def test_emit_stores_event(self, capsys):
        EventEmitter(Component.PIPELINE).emit("command.received", command_id="cmd_store")

        events = event_store.query(command_id="cmd_store")
        assert len(events) == 1
        assert events[0]["event_type"] == "command.received"


class TestEventStore:

    def _event(self, command_id, event_type, ts=None, component="pipeline"):
        return {
            "ts": (ts or datetime.now(timezone.utc)).isoformat(),
            "command_id": command_id,
            "component": component,
            "event_type": event_type,
            "severity": "info",
            "correlation_id": command_id,
            "pii": {"contains_pii": False, "fields": [], "handling": "none"},
            "detail": "x",
        }

    def test_query_filters(self):
        store = EventStore()
        store.store(self._event("cmd_a", "command.received"))
        store.store(self._event("cmd_a", "action.dispatched", component="dispatcher"))
        store.store(self._event("cmd_b", "command.received"))

        assert len(store.query(command_id="cmd_a")) == 2
        assert len(store.query(event_type="command.received")) == 2
        assert len(store.query(component="dispatcher")) == 1
        assert store.query(command_id="cmd_a", limit=1)[0]["event_type"] == "command.received"

    def test_query_time_window(self):
        store = EventStore()
        now = datetime.now(timezone.utc)
        store.store(self._event("cmd_a", "old", ts=now - timedelta(minutes=5)))
        store.store(self._event("cmd_a", "new", ts=now))

        events = store.query(since=now - timedelta(minutes=1))
        assert [e["event_type"] for e in events] == ["new"]

    def test_payload_round_trips(self):
        store = EventStore()
        store.store(self._event("cmd_a", "command.received"))

        assert store.query()[0]["detail"] == "x"

    def test_bounded(self):
        store = EventStore(max_events=3)
        for i in range(5):
            store.store(self._event(f"cmd_{i}", "command.received"))

        stats = store.get_stats()
        assert stats["total_events"] == 3
        assert stats["max_events"] == 3
        assert [e["command_id"] for e in store.query()] == ["cmd_2", "cmd_3", "cmd_4"]


class TestCommandView:

    def _emit_run(self, command_id, final="command.completed", status="success"):
        emitter = EventEmitter(Component.PIPELINE)
        emitter.emit("command.received", command_id=command_id)
        if status == "rejected":
            emitter.emit("intent.rejected", command_id=command_id, kind="unknown_target")
        if final:
            emitter.emit(final, command_id=command_id, status=status)

    def test_by_command(self):
        self._emit_run("cmd_a")
        self._emit_run("cmd_b")

        events = event_store.by_command("cmd_a")
        assert [e["event_type"] for e in events] == ["command.received", "command.completed"]
        assert event_store.by_command("cmd_a", event_type="command.completed")[0]["status"] == "success"

    def test_summary_of_completed_command(self):
        self._emit_run("cmd_ok")

        summary = event_store.command_summary("cmd_ok")
        assert summary["outcome"] == "success"
        assert summary["rejection_kind"] is None
        assert summary["event_count"] == 2
        assert summary["duration_ms"] >= 0

    def test_summary_of_rejected_command(self):
        self._emit_run("cmd_rej", status="rejected")

        summary = event_store.command_summary("cmd_rej")
        assert summary["outcome"] == "rejected"
        assert summary["rejection_kind"] == "unknown_target"

    def test_summary_of_cancelled_and_running_commands(self):
        self._emit_run("cmd_cancel", final="command.cancelled")
        self._emit_run("cmd_running", final=None)

        assert event_store.command_summary("cmd_cancel")["outcome"] == "cancelled"
        assert event_store.command_summary("cmd_running")["outcome"] == "in_progress"

    def test_summary_of_unknown_command(self):
        assert event_store.command_summary("cmd_missing") is None
