"""Activity definitions module."""

from activities.reconcile import (
    ReconciliationActivities,
    ReconcileInvoiceInput,
    ReconcileInvoiceOutput,
    ApprovalDecisionInput,
    ApprovalDecisionOutput,
)

__all__ = [
    "ReconciliationActivities",
    "ReconcileInvoiceInput",
    "ReconcileInvoiceOutput",
    "ApprovalDecisionInput",
    "ApprovalDecisionOutput",
]
