"""Invoice-to-purchase-order reconciliation."""

from reconciliation.engine import ReconciliationEngine
from reconciliation.models import (
    ApplyResult,
    ApprovalOutcome,
    ApprovalStatus,
    FeeChange,
    PendingApproval,
    PriceChange,
    ReconciliationOutcome,
    ReconciliationResult,
    TrackingUpdate,
    Verdict,
)
from reconciliation.approvals import PendingApprovalRegistry
from reconciliation.tracking import AuditTrackingStore, InMemoryTrackingStore, TrackingStore

__all__ = [
    "ReconciliationEngine",
    "PendingApprovalRegistry",
    "TrackingStore",
    "InMemoryTrackingStore",
    "AuditTrackingStore",
    "ApplyResult",
    "ApprovalOutcome",
    "ApprovalStatus",
    "FeeChange",
    "PendingApproval",
    "PriceChange",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "TrackingUpdate",
    "Verdict",
]
