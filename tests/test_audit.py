"""Security audit logger tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from paperbag.security import audit as audit_module
from paperbag.security.audit import SecurityAuditLogger


def test_entries_are_recorded_with_metadata():
    audit = SecurityAuditLogger(max_entries=10, sink=MagicMock())

    audit.log("warning", "rate_limit_exceeded", {"function": "f"}, user_id="user-1", ip="1.2.3.4")

    [entry] = audit.get_logs()
    assert entry.level == "warning"
    assert entry.event == "rate_limit_exceeded"
    assert entry.details == {"function": "f"}
    assert entry.user_id == "user-1"
    assert entry.ip == "1.2.3.4"
    assert entry.timestamp.tzinfo is not None


def test_oldest_entries_are_evicted_beyond_capacity():
    audit = SecurityAuditLogger(max_entries=1000, sink=MagicMock())

    for i in range(1005):
        audit.log("info", f"event-{i}")

    logs = audit.get_logs()
    assert len(audit) == 1000
    assert logs[0].event == "event-5"
    assert logs[-1].event == "event-1004"


def test_filters_combine():
    audit = SecurityAuditLogger(sink=MagicMock())
    audit.log("info", "a", user_id="user-1")
    audit.log("warning", "b", user_id="user-1")
    audit.log("warning", "c", user_id="user-2")

    assert [e.event for e in audit.get_logs(level="warning")] == ["b", "c"]
    assert [e.event for e in audit.get_logs(user_id="user-1")] == ["a", "b"]
    assert [e.event for e in audit.get_logs(level="warning", user_id="user-1")] == ["b"]


def test_since_filter():
    audit = SecurityAuditLogger(sink=MagicMock())
    audit.log("info", "old")
    cutoff = datetime.now(timezone.utc) + timedelta(seconds=1)

    assert audit.get_logs(since=cutoff) == []
    assert [e.event for e in audit.get_logs(since=cutoff - timedelta(hours=1))] == ["old"]


def test_entries_are_mirrored_to_sink():
    sink = MagicMock()
    audit = SecurityAuditLogger(sink=sink)

    audit.log("error", "function_execution_error", {"error_type": "ValueError"}, user_id="u")

    sink.error.assert_called_once_with(
        "security.audit",
        audit_event="function_execution_error",
        user_id="u",
        ip=None,
        error_type="ValueError",
    )


def test_failing_sink_does_not_raise():
    sink = MagicMock()
    sink.info.side_effect = RuntimeError("log shipper down")
    audit = SecurityAuditLogger(sink=sink)

    audit.log("info", "image_save")

    assert [e.event for e in audit.get_logs()] == ["image_save"]


def test_failing_sink_is_reported_at_debug(monkeypatch):
    module_logger = MagicMock()
    monkeypatch.setattr(audit_module, "logger", module_logger)
    sink = MagicMock()
    sink.warning.side_effect = RuntimeError("log shipper down")
    audit = SecurityAuditLogger(sink=sink)

    audit.log("warning", "invalid_style_parameter")

    module_logger.debug.assert_called_once_with(
        "security.audit.sink_failed",
        audit_event="invalid_style_parameter",
        error_type="RuntimeError",
    )
