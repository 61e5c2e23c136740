"""Reconciliation activities for the invoice processing pipeline.

Temporal activities that reconcile an extracted invoice against its purchase
order and relay human approval decisions to the engine.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from temporalio import activity

from core.models.canonical import InvoiceData
from core.observability.logging import with_correlation
from reconciliation.engine import ReconciliationEngine
from reconciliation.report import format_apply_result


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ReconcileInvoiceInput:
    """Input for reconcile_invoice activity.

    Attributes:
        invoice: Serialized InvoiceData from the extraction step
        order_id: Purchase order the invoice was matched to
    """
    invoice: dict
    order_id: str


@dataclass
class ReconcileInvoiceOutput:
    """Output from reconcile_invoice activity.

    Attributes:
        verdict: Overall verdict of the plan
        summary: Rendered reconciliation summary
        approval_id: Set when the plan is waiting for a human
        applied / skipped / errors: Apply lines when changes were auto-applied
        apply_report: Rendered apply result, empty when nothing was applied
    """
    verdict: str
    summary: str
    total_dollar_impact: str
    approval_id: Optional[str] = None
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    apply_report: str = ""


@dataclass
class ApprovalDecisionInput:
    """Input for approve/reject activities."""
    approval_id: str
    actor: str = "approver"


@dataclass
class ApprovalDecisionOutput:
    """Output from approve/reject activities."""
    success: bool
    message: str
    applied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


# =============================================================================
# Activity Definitions
# =============================================================================

class ReconciliationActivities:
    """Activities bound to one engine instance.

    Usage (worker):
        activities = ReconciliationActivities(engine)
        Worker(client, task_queue="recon-default", activities=activities.all())
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine

    def all(self) -> list:
        return [self.reconcile_invoice, self.approve_reconciliation, self.reject_reconciliation]

    @activity.defn
    async def reconcile_invoice(self, input: ReconcileInvoiceInput) -> ReconcileInvoiceOutput:
        """Reconcile an invoice and act on the verdict.

        Args:
            input: ReconcileInvoiceInput with the invoice payload and order id

        Returns:
            ReconcileInvoiceOutput with the verdict and what happened
        """
        info = activity.info()
        invoice = InvoiceData.model_validate(input.invoice)

        with with_correlation(workflow_id=info.workflow_id, activity_name=info.activity_type):
            activity.logger.info(f"Reconciling invoice {invoice.invoice_number} against PO {input.order_id}")

            outcome = await self.engine.process(invoice, input.order_id)
            result = outcome.result

            output = ReconcileInvoiceOutput(
                verdict=result.overall_verdict.value,
                summary=result.summary,
                total_dollar_impact=str(result.total_dollar_impact),
                approval_id=outcome.approval_id,
            )

            if outcome.apply_result is not None:
                output.applied = list(outcome.apply_result.applied)
                output.skipped = list(outcome.apply_result.skipped)
                output.errors = list(outcome.apply_result.errors)
                output.apply_report = format_apply_result(outcome.apply_result, result.order_id)

            if output.errors:
                activity.logger.warning(f"Invoice {invoice.invoice_number}: {len(output.errors)} write error(s)")
            else:
                activity.logger.info(f"Invoice {invoice.invoice_number}: {output.verdict}")

            return output

    @activity.defn
    async def approve_reconciliation(self, input: ApprovalDecisionInput) -> ApprovalDecisionOutput:
        """Approve a pending reconciliation and apply its escalated changes."""
        outcome = await self.engine.approve_pending(input.approval_id, actor=input.actor)
        activity.logger.info(f"Approval {input.approval_id}: {outcome.message}")
        return ApprovalDecisionOutput(
            success=outcome.success,
            message=outcome.message,
            applied=list(outcome.applied),
            errors=list(outcome.errors),
        )

    @activity.defn
    async def reject_reconciliation(self, input: ApprovalDecisionInput) -> ApprovalDecisionOutput:
        """Reject a pending reconciliation."""
        outcome = await self.engine.reject_pending(input.approval_id, actor=input.actor)
        activity.logger.info(f"Rejection {input.approval_id}: {outcome.message}")
        return ApprovalDecisionOutput(success=outcome.success, message=outcome.message)
