"""Audit event logging and persistence.

Provides the append-only activity log used by the reconciliation engine.
Every reconciliation attempt, approval and rejection is written here and
the duplicate detector queries it back by (invoice_number, order_id).
Supports multiple persistence backends.
"""

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models.refs import AuditEvent, AuditSeverity
from core.observability.logging import get_logger


logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Standard audit event types."""
    # Completed reconciliation (applied, approved or rejected by a human).
    # This is the intent the duplicate detector looks for.
    RECONCILIATION = "RECONCILIATION"

    # Reconciliation attempts that did not complete
    RECONCILIATION_ESCALATED = "RECONCILIATION_ESCALATED"
    RECONCILIATION_BLOCKED = "RECONCILIATION_BLOCKED"
    RECONCILIATION_SKIPPED = "RECONCILIATION_SKIPPED"

    # Approval lifecycle
    APPROVAL_EXPIRED = "APPROVAL_EXPIRED"

    # Tracking numbers written to a shipment
    TRACKING_RECORDED = "TRACKING_RECORDED"


def create_audit_event(
    event_type: AuditEventType,
    message: str,
    severity: AuditSeverity = AuditSeverity.INFO,
    invoice_number: Optional[str] = None,
    order_id: Optional[str] = None,
    approval_id: Optional[str] = None,
    vendor_name: Optional[str] = None,
    workflow_id: Optional[str] = None,
    activity_name: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: str = "system",
) -> AuditEvent:
    """Create a new audit event with auto-generated ID and timestamp.

    Args:
        event_type: Type of event
        message: Human-readable action taken
        severity: Event severity level
        invoice_number: Associated invoice number
        order_id: Associated purchase order id
        approval_id: Pending approval id, when the event resolves one
        vendor_name: Invoice vendor
        workflow_id: Temporal workflow ID
        activity_name: Activity that generated the event
        details: Additional structured details
        actor: Who/what performed the action

    Returns:
        Configured AuditEvent ready for logging
    """
    return AuditEvent(
        event_id=str(uuid.uuid4()),
        timestamp=datetime.utcnow(),
        event_type=event_type.value,
        severity=severity,
        invoice_number=invoice_number,
        order_id=order_id,
        approval_id=approval_id,
        vendor_name=vendor_name,
        workflow_id=workflow_id,
        activity_name=activity_name,
        message=message,
        details=details or {},
        actor=actor,
    )


def _matches(
    event: AuditEvent,
    event_type: Optional[str],
    invoice_number: Optional[str],
    order_id: Optional[str],
) -> bool:
    if event_type and event.event_type != event_type:
        return False
    if invoice_number is not None and event.invoice_number != invoice_number:
        return False
    if order_id is not None and event.order_id != order_id:
        return False
    return True


class AuditBackend(ABC):
    """Abstract base class for audit persistence backends."""

    @abstractmethod
    async def insert(self, event: AuditEvent) -> None:
        """Persist an audit event."""
        pass

    @abstractmethod
    async def query(
        self,
        event_type: Optional[str] = None,
        invoice_number: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query audit events with filters, newest first."""
        pass


class JSONFileAuditBackend(AuditBackend):
    """Audit backend that stores events in JSON files.

    Stores one file per day in YYYY-MM-DD.json format.
    """

    def __init__(self, base_path: Path):
        """Initialize with base directory for audit files."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _get_file_path(self, date: datetime) -> Path:
        """Get file path for a given date."""
        return self.base_path / f"{date.strftime('%Y-%m-%d')}.json"

    async def insert(self, event: AuditEvent) -> None:
        """Append event to daily file."""
        file_path = self._get_file_path(event.timestamp)

        async with self._lock:
            events = []
            if file_path.exists():
                with open(file_path, "r", encoding="utf-8") as f:
                    events = json.load(f)

            events.append(event.model_dump(mode="json"))

            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(events, f, indent=2)

    async def query(
        self,
        event_type: Optional[str] = None,
        invoice_number: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from JSON files, walking days newest first."""
        results = []

        for file_path in sorted(self.base_path.glob("*.json"), reverse=True):
            with open(file_path, "r", encoding="utf-8") as f:
                events = json.load(f)

            for event_data in reversed(events):
                event = AuditEvent.model_validate(event_data)
                if not _matches(event, event_type, invoice_number, order_id):
                    continue
                results.append(event)
                if len(results) >= limit:
                    return results

        return results


class InMemoryAuditBackend(AuditBackend):
    """In-memory audit backend for testing and local runs."""

    def __init__(self):
        self._events: List[AuditEvent] = []

    async def insert(self, event: AuditEvent) -> None:
        self._events.append(event)

    async def query(
        self,
        event_type: Optional[str] = None,
        invoice_number: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        results = []
        for event in reversed(self._events):
            if not _matches(event, event_type, invoice_number, order_id):
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    @property
    def events(self) -> List[AuditEvent]:
        """All events in insertion order."""
        return list(self._events)

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self._events.clear()


class AuditLogger:
    """Main audit logger that supports multiple backends.

    Writes fan out to every backend; a failing backend is logged and never
    breaks the caller. Queries go to the first backend and DO raise, so the
    caller can decide its own fail-open policy.

    Usage:
        audit = AuditLogger()
        audit.add_backend(JSONFileAuditBackend(Path("./audit")))

        await audit.log_info(
            AuditEventType.RECONCILIATION,
            "Auto-applied 2 change(s)",
            invoice_number="INV-1001",
            order_id="PO-2231",
        )
    """

    def __init__(self, backends: Optional[List[AuditBackend]] = None):
        self._backends: List[AuditBackend] = list(backends or [])

    def add_backend(self, backend: AuditBackend) -> None:
        """Add an audit backend."""
        self._backends.append(backend)

    async def log(self, event: AuditEvent) -> None:
        """Log event to all backends."""
        for backend in self._backends:
            try:
                await backend.insert(event)
            except Exception as e:
                logger.error(
                    f"Audit logging failed for backend {type(backend).__name__}: {e}",
                    extra_fields={"event_type": event.event_type},
                )

    async def log_info(
        self,
        event_type: AuditEventType,
        message: str,
        **kwargs,
    ) -> AuditEvent:
        """Log an INFO level event."""
        event = create_audit_event(event_type, message, AuditSeverity.INFO, **kwargs)
        await self.log(event)
        return event

    async def log_warning(
        self,
        event_type: AuditEventType,
        message: str,
        **kwargs,
    ) -> AuditEvent:
        """Log a WARN level event."""
        event = create_audit_event(event_type, message, AuditSeverity.WARN, **kwargs)
        await self.log(event)
        return event

    async def log_block(
        self,
        event_type: AuditEventType,
        message: str,
        **kwargs,
    ) -> AuditEvent:
        """Log a BLOCK level event."""
        event = create_audit_event(event_type, message, AuditSeverity.BLOCK, **kwargs)
        await self.log(event)
        return event

    async def query(
        self,
        event_type: Optional[str] = None,
        invoice_number: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from the first backend, newest first."""
        if not self._backends:
            return []
        return await self._backends[0].query(event_type, invoice_number, order_id, limit)
