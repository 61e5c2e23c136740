"""Core audit module - activity log tracking and persistence."""

from core.audit.events import (
    AuditLogger,
    AuditBackend,
    AuditEventType,
    InMemoryAuditBackend,
    JSONFileAuditBackend,
    create_audit_event,
)

__all__ = [
    "AuditLogger",
    "AuditBackend",
    "AuditEventType",
    "InMemoryAuditBackend",
    "JSONFileAuditBackend",
    "create_audit_event",
]
