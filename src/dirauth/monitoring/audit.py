"""
DirAuth Audit Trail

Internal error channel for authentication attempts.

The caller-facing verdict deliberately collapses "user not found",
"wrong password", and "directory unreachable" into a single denial. The
audit trail keeps the specific kind so operators can tell brute-force
attempts from outages.

Features:
- One immutable AuditEvent per attempt (never contains the password)
- Structured logging through structlog
- Bounded in-memory history
- Listener callbacks for forwarding to external systems
- Failure statistics and JSON export

Usage:
    trail = AuditTrail()
    trail.add_listener(lambda event: print(event.kind))

    auth = DirectoryAuthenticator(config, client=directory, audit=trail)
    auth.authenticate("alice", "wrong")

    print(trail.failure_counts())  # {FailureKind.WRONG_PASSWORD: 1}
"""

from __future__ import annotations

import json
import threading
import uuid
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

import attrs
import structlog
from returns.result import Failure, Result

from dirauth.core.exceptions import DirAuthError
from dirauth.core.types import AuthenticationVerdict, FailureKind

logger = structlog.get_logger()


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class AuditEvent:
    """
    Immutable record of one authentication attempt.

    Attributes:
        event_id: Unique identifier
        username: Username as presented
        success: Whether the attempt was authenticated
        kind: Failure kind (None on success)
        principal_dn: Resolved DN (on success)
        groups: Group names found (on success)
        message: Internal error detail (on failure)
        duration_ms: Wall time of the attempt
        timestamp: When the attempt finished
    """

    event_id: str
    username: str
    success: bool
    kind: Optional[FailureKind] = None
    principal_dn: str = ""
    groups: Iterable[str] = attrs.field(factory=tuple, converter=lambda g: tuple(sorted(g)))
    message: str = ""
    duration_ms: float = 0.0
    timestamp: datetime = attrs.field(factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": self.event_id,
            "username": self.username,
            "success": self.success,
            "kind": self.kind.value if self.kind else None,
            "principal_dn": self.principal_dn,
            "groups": list(self.groups),
            "message": self.message,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


AuditListener = Callable[[AuditEvent], None]


# =============================================================================
# AUDIT TRAIL
# =============================================================================


@attrs.define
class AuditTrail:
    """
    Records authentication attempts.

    Thread-safe; shared by concurrent authenticate() calls.
    """

    max_history: int = attrs.field(default=1000, validator=attrs.validators.ge(1))

    _history: Deque[AuditEvent] = attrs.field(init=False)
    _listeners: List[AuditListener] = attrs.Factory(list)
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._history = deque(maxlen=self.max_history)

    def record(
        self,
        username: str,
        result: Result[AuthenticationVerdict, DirAuthError],
        duration_ms: float = 0.0,
    ) -> AuditEvent:
        """
        Record the outcome of one authentication pipeline run.

        Args:
            username: Username as presented
            result: Success(verdict) or Failure(error)
            duration_ms: Wall time of the attempt

        Returns:
            The recorded AuditEvent
        """
        if isinstance(result, Failure):
            return self.record_failure(username, result.failure(), duration_ms)
        verdict = result.unwrap()
        return self.record_success(username, verdict.principal_dn, verdict.groups, duration_ms)

    def record_success(
        self,
        username: str,
        principal_dn: str,
        groups: Iterable[str] = (),
        duration_ms: float = 0.0,
    ) -> AuditEvent:
        """Record an authenticated attempt."""
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            username=username,
            success=True,
            principal_dn=principal_dn,
            groups=groups,
            duration_ms=duration_ms,
        )
        self._logger.info(
            "authentication_succeeded",
            username=username,
            principal_dn=principal_dn,
            groups=list(event.groups),
            duration_ms=round(duration_ms, 3),
        )
        self._publish(event)
        return event

    def record_failure(
        self,
        username: str,
        error: DirAuthError,
        duration_ms: float = 0.0,
    ) -> AuditEvent:
        """Record a failed attempt with its specific kind."""
        kind = error.kind or FailureKind.DIRECTORY_ERROR
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            username=username,
            success=False,
            kind=kind,
            message=error.message,
            duration_ms=duration_ms,
        )
        log = self._logger.error if kind.is_outage else self._logger.warning
        log(
            "authentication_failed",
            username=username,
            kind=kind.value,
            reason=error.message,
            duration_ms=round(duration_ms, 3),
        )
        self._publish(event)
        return event

    def _publish(self, event: AuditEvent) -> None:
        with self._lock:
            self._history.append(event)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self._logger.warning("audit_listener_failed", error=str(e))

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_listener(self, listener: AuditListener) -> None:
        """Register a callback invoked for every event."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: AuditListener) -> bool:
        """Unregister a callback. Returns True if it was registered."""
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def history(self, limit: Optional[int] = None) -> List[AuditEvent]:
        """Return recorded events, oldest first (the last `limit` if given)."""
        with self._lock:
            events = list(self._history)
        return events[-limit:] if limit else events

    @property
    def last_event(self) -> Optional[AuditEvent]:
        """Most recent event."""
        with self._lock:
            return self._history[-1] if self._history else None

    def events_for(self, username: str) -> List[AuditEvent]:
        """Events for a single username."""
        return [e for e in self.history() if e.username == username]

    def failure_counts(self) -> Dict[FailureKind, int]:
        """Count failures by kind."""
        return dict(Counter(e.kind for e in self.history() if e.kind is not None))

    def get_statistics(self) -> Dict[str, Any]:
        """Summary statistics over the retained history."""
        events = self.history()
        failures = [e for e in events if not e.success]
        return {
            "total_attempts": len(events),
            "successful": len(events) - len(failures),
            "failed": len(failures),
            "outages": sum(1 for e in failures if e.kind is not None and e.kind.is_outage),
            "failures_by_kind": {k.value: v for k, v in self.failure_counts().items()},
            "unique_users": len({e.username for e in events}),
        }

    def export_json(self) -> str:
        """Export history and statistics as JSON."""
        return json.dumps(
            {
                "export_timestamp": datetime.now(timezone.utc).isoformat(),
                "statistics": self.get_statistics(),
                "events": [e.to_dict() for e in self.history()],
            },
            indent=2,
            default=str,
        )

    def clear(self) -> int:
        """Clear the history. Returns the number of events dropped."""
        with self._lock:
            count = len(self._history)
            self._history.clear()
        self._logger.info("audit_history_cleared", count=count)
        return count
