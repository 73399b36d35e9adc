"""
Unit tests for dirauth.monitoring.audit module.
"""

import json

import pytest
from returns.result import Failure, Success
from structlog.testing import capture_logs

from dirauth.core.exceptions import (
    DirAuthError,
    DirectoryUnreachable,
    UserNotFound,
    WrongPassword,
)
from dirauth.core.types import AuthenticationVerdict, FailureKind
from dirauth.monitoring.audit import AuditEvent, AuditTrail

from tests.conftest import ALICE_DN


class TestRecord:
    """Tests for recording outcomes."""

    def test_record_success(self, audit_trail: AuditTrail):
        verdict = AuthenticationVerdict.granted(ALICE_DN, {"staff", "admins"}, "alice")
        event = audit_trail.record("alice", Success(verdict), 1.5)

        assert event.success
        assert event.kind is None
        assert event.principal_dn == ALICE_DN
        assert event.groups == ("admins", "staff")
        assert event.duration_ms == 1.5
        assert audit_trail.last_event is event

    def test_record_failure_keeps_kind(self, audit_trail: AuditTrail):
        event = audit_trail.record("alice", Failure(WrongPassword(ALICE_DN)))

        assert not event.success
        assert event.kind == FailureKind.WRONG_PASSWORD
        assert ALICE_DN in event.message
        assert event.principal_dn == ""

    def test_kindless_error_is_directory_error(self, audit_trail: AuditTrail):
        event = audit_trail.record_failure("alice", DirAuthError("unexpected"))
        assert event.kind == FailureKind.DIRECTORY_ERROR

    def test_outage_logged_as_error(self, audit_trail: AuditTrail):
        with capture_logs() as logs:
            audit_trail.record_failure("alice", DirectoryUnreachable("refused"))
            audit_trail.record_failure("bob", UserNotFound("bob"))

        assert [(log["event"], log["log_level"]) for log in logs] == [
            ("authentication_failed", "error"),
            ("authentication_failed", "warning"),
        ]
        assert logs[0]["kind"] == "directory_unreachable"

    def test_password_never_recorded(self, audit_trail: AuditTrail):
        event = audit_trail.record("alice", Failure(WrongPassword(ALICE_DN)))
        assert "secret12" not in json.dumps(event.to_dict())

    def test_event_immutable(self, audit_trail: AuditTrail):
        event = audit_trail.record_success("alice", ALICE_DN)
        with pytest.raises(AttributeError):
            event.success = False


class TestListeners:
    """Tests for listener callbacks."""

    def test_listener_receives_events(self, audit_trail: AuditTrail):
        received = []
        audit_trail.add_listener(received.append)

        audit_trail.record_success("alice", ALICE_DN)
        audit_trail.record_failure("bob", UserNotFound("bob"))

        assert [e.username for e in received] == ["alice", "bob"]

    def test_remove_listener(self, audit_trail: AuditTrail):
        received = []
        audit_trail.add_listener(received.append)
        assert audit_trail.remove_listener(received.append)
        assert not audit_trail.remove_listener(received.append)

        audit_trail.record_success("alice", ALICE_DN)
        assert received == []

    def test_failing_listener_does_not_break_recording(self, audit_trail: AuditTrail):
        def broken(event: AuditEvent) -> None:
            raise RuntimeError("sink offline")

        received = []
        audit_trail.add_listener(broken)
        audit_trail.add_listener(received.append)

        with capture_logs() as logs:
            audit_trail.record_success("alice", ALICE_DN)

        assert len(received) == 1
        assert any(log["event"] == "audit_listener_failed" for log in logs)
        assert len(audit_trail.history()) == 1


class TestQueries:
    """Tests for history and statistics."""

    def test_history_bounded(self):
        trail = AuditTrail(max_history=3)
        for i in range(5):
            trail.record_success(f"user{i}", f"uid=user{i},dc=org")

        assert [e.username for e in trail.history()] == ["user2", "user3", "user4"]
        assert [e.username for e in trail.history(limit=1)] == ["user4"]

    def test_max_history_validated(self):
        with pytest.raises(ValueError):
            AuditTrail(max_history=0)

    def test_events_for(self, audit_trail: AuditTrail):
        audit_trail.record_success("alice", ALICE_DN)
        audit_trail.record_failure("bob", UserNotFound("bob"))
        audit_trail.record_failure("alice", WrongPassword(ALICE_DN))

        assert [e.success for e in audit_trail.events_for("alice")] == [True, False]

    def test_statistics(self, audit_trail: AuditTrail):
        audit_trail.record_success("alice", ALICE_DN)
        audit_trail.record_failure("alice", WrongPassword(ALICE_DN))
        audit_trail.record_failure("bob", WrongPassword("uid=bob,dc=org"))
        audit_trail.record_failure("carol", DirectoryUnreachable("refused"))

        assert audit_trail.failure_counts() == {
            FailureKind.WRONG_PASSWORD: 2,
            FailureKind.DIRECTORY_UNREACHABLE: 1,
        }
        stats = audit_trail.get_statistics()
        assert stats["total_attempts"] == 4
        assert stats["successful"] == 1
        assert stats["failed"] == 3
        assert stats["outages"] == 1
        assert stats["failures_by_kind"] == {"wrong_password": 2, "directory_unreachable": 1}
        assert stats["unique_users"] == 3

    def test_export_json(self, audit_trail: AuditTrail):
        audit_trail.record_success("alice", ALICE_DN, ["staff"])
        exported = json.loads(audit_trail.export_json())

        assert exported["statistics"]["total_attempts"] == 1
        assert exported["events"][0]["groups"] == ["staff"]
        assert exported["events"][0]["kind"] is None

    def test_clear(self, audit_trail: AuditTrail):
        audit_trail.record_success("alice", ALICE_DN)
        audit_trail.record_success("alice", ALICE_DN)

        assert audit_trail.clear() == 2
        assert audit_trail.history() == []
        assert audit_trail.last_event is None
