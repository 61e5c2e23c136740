"""Audit event models for the reconciliation activity log."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# =============================================================================
# Audit Event Models
# =============================================================================

class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    BLOCK = "BLOCK"


class AuditEvent(BaseModel):
    """An entry in the append-only activity log.

    Every reconciliation attempt, approval and rejection is recorded here,
    keyed by (invoice_number, order_id). The duplicate detector reads back
    events of type RECONCILIATION to keep re-delivered invoices from
    mutating an order twice.
    """
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    event_type: str = Field(..., description="Type of event (RECONCILIATION, RECONCILIATION_ESCALATED, ...)")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    invoice_number: Optional[str] = Field(None, description="Associated invoice")
    order_id: Optional[str] = Field(None, description="Associated purchase order")
    approval_id: Optional[str] = Field(None, description="Pending approval this event resolves")
    vendor_name: Optional[str] = Field(None, description="Invoice vendor")
    workflow_id: Optional[str] = Field(None, description="Temporal workflow ID")
    activity_name: Optional[str] = Field(None, description="Activity that generated event")

    # Details
    message: str = Field(..., description="Human-readable action taken")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Who/what performed the action")
