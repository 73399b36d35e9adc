"""
DirAuth Monitoring

Audit trail for authentication attempts. Keeps the specific failure kind
that the caller-facing verdict hides, so operators can tell brute-force
attempts from directory outages.
"""

from dirauth.monitoring.audit import AuditEvent, AuditListener, AuditTrail

__all__ = [
    "AuditEvent",
    "AuditListener",
    "AuditTrail",
]
