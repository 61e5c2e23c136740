"""Reconciliation engine for vendor invoices against purchase orders.

Exposes:
- ReconciliationEngine.reconcile(invoice, order_id) -> ReconciliationResult (plan only)
- ReconciliationEngine.apply(result, ...) -> ApplyResult
- ReconciliationEngine.process(invoice, order_id) -> ReconciliationOutcome
- ReconciliationEngine.approve_pending(id) / reject_pending(id) -> ApprovalOutcome

Guard sequence (fast-fail order):
  0. Duplicate detection   - already reconciled? stop before reading the order
  1. Vendor correlation    - does this invoice belong to this order?
  2. Quantity overbill     - per line, in line_items
  3. Fee threshold         - per fee, in fees
  4. Price % and magnitude - per line, in line_items
  5. Total impact cap      - aggregate, in verdicts
"""

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from connectors.inventory_base import FeeType, InventoryConnector
from core.audit.events import AuditEventType, AuditLogger
from core.config import DEFAULT_THRESHOLDS, ReconciliationThresholds
from core.models.canonical import InvoiceData
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from reconciliation.apply import apply_reconciliation
from reconciliation.approvals import PendingApprovalRegistry
from reconciliation.duplicates import DuplicateDetector
from reconciliation.fees import reconcile_fees
from reconciliation.line_items import reconcile_line_items
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
    VendorConfidence,
    Verdict,
)
from reconciliation.report import build_reconciliation_summary
from reconciliation.tracking import InMemoryTrackingStore, TrackingStore, reconcile_tracking
from reconciliation.vendor import correlate_vendor
from reconciliation.verdicts import (
    apply_impact_cap,
    is_auto_applicable,
    overall_verdict,
    total_dollar_impact,
)


logger = get_logger(__name__)

NOT_FOUND_MESSAGE = "Approval not found or expired."


class ReconciliationEngine:
    """Plans, applies and tracks approvals of invoice-to-order reconciliations.

    Usage:
        engine = ReconciliationEngine(connector, AuditLogger([InMemoryAuditBackend()]))
        outcome = await engine.process(invoice, "PO-2231")
        if outcome.approval_id:
            await engine.approve_pending(outcome.approval_id)
    """

    def __init__(
        self,
        connector: InventoryConnector,
        audit: AuditLogger,
        tracking_store: Optional[TrackingStore] = None,
        approvals: Optional[PendingApprovalRegistry] = None,
        thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
        fail_open: bool = True,
    ):
        self.connector = connector
        self.audit = audit
        self.tracking_store = tracking_store if tracking_store is not None else InMemoryTrackingStore()
        self.approvals = approvals if approvals is not None else PendingApprovalRegistry(ttl=thresholds.approval_ttl)
        self.thresholds = thresholds
        self.fail_open = fail_open
        self.duplicates = DuplicateDetector(audit)

        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = defaultdict(int)

    # =========================================================================
    # Planning
    # =========================================================================

    async def reconcile(self, invoice: InvoiceData, order_id: str) -> ReconciliationResult:
        """Compare an invoice against an order and produce a change plan.

        Does NOT write to the inventory system.
        """
        start = time.time()
        with with_correlation(invoice_number=invoice.invoice_number, order_id=order_id, stage="reconcile"):
            result = await self._plan(invoice, order_id)

            duration_ms = (time.time() - start) * 1000
            get_metrics().record_reconciliation(result.overall_verdict.value, duration_ms)
            logger.info(
                f"Reconciliation planned: {result.overall_verdict.value}",
                extra_fields={
                    "verdict": result.overall_verdict.value,
                    "price_changes": len(result.price_changes),
                    "fee_changes": len(result.fee_changes),
                    "total_dollar_impact": str(result.total_dollar_impact),
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return result

    async def _plan(self, invoice: InvoiceData, order_id: str) -> ReconciliationResult:
        warnings: List[str] = []

        # Guard 0: duplicate detection, before any order reads
        dupe = await self.duplicates.check(invoice.invoice_number, order_id, fail_open=self.fail_open)
        if dupe.degraded:
            warnings.append(f"Duplicate check unavailable ({dupe.error})")

        if dupe.value.is_duplicate:
            prior = dupe.value.action_taken
            if dupe.value.processed_at is not None:
                prior = f"{prior} (on {dupe.value.processed_at:%m/%d/%Y})"
            logger.warning(f"Duplicate invoice, already reconciled: {prior}")
            return self._result(invoice, order_id, Verdict.DUPLICATE, warnings=warnings, prior_action=prior)

        try:
            order = await self.connector.get_order_summary(order_id)
        except Exception as e:
            logger.error(f"Failed to fetch PO {order_id}: {e}")
            warnings.append(f"Could not fetch PO {order_id}: {e}")
            return self._result(invoice, order_id, Verdict.NO_MATCH, warnings=warnings)

        if order is None:
            warnings.append(f"Could not find PO {order_id}")
            return self._result(invoice, order_id, Verdict.NO_MATCH, warnings=warnings)

        # Guard 1: vendor correlation
        vendor = correlate_vendor(
            invoice.vendor_name,
            order.supplier,
            invoice.po_number,
            order_id,
            invoice.line_skus,
            order.product_ids,
            self.thresholds,
        )
        if not vendor.passed:
            warnings.append(vendor.note)
            return self._result(
                invoice, order_id, Verdict.NEEDS_APPROVAL, warnings=warnings, vendor_note=vendor.note,
            )

        vendor_note = None
        if vendor.confidence != VendorConfidence.HIGH:
            warnings.append(vendor.note)
            vendor_note = vendor.note

        price_changes = reconcile_line_items(invoice, order, self.thresholds)
        fee_changes = reconcile_fees(invoice, order, self.thresholds)
        tracking_update = reconcile_tracking(invoice)

        total = total_dollar_impact(price_changes, fee_changes)
        price_changes = apply_impact_cap(price_changes, total, self.thresholds)
        verdict = overall_verdict(price_changes, fee_changes, tracking_update)

        return self._result(
            invoice,
            order_id,
            verdict,
            price_changes=price_changes,
            fee_changes=fee_changes,
            tracking_update=tracking_update,
            total=total,
            warnings=warnings,
            vendor_note=vendor_note,
        )

    def _result(
        self,
        invoice: InvoiceData,
        order_id: str,
        verdict: Verdict,
        price_changes: Iterable[PriceChange] = (),
        fee_changes: Iterable[FeeChange] = (),
        tracking_update: Optional[TrackingUpdate] = None,
        total: Decimal = Decimal("0"),
        warnings: Iterable[str] = (),
        vendor_note: Optional[str] = None,
        prior_action: Optional[str] = None,
    ) -> ReconciliationResult:
        price_changes = list(price_changes)
        fee_changes = list(fee_changes)
        warnings = list(warnings)

        summary = build_reconciliation_summary(
            order_id,
            invoice,
            price_changes,
            fee_changes,
            tracking_update,
            total,
            verdict,
            warnings,
            prior_action=prior_action,
        )

        return ReconciliationResult(
            order_id=order_id,
            invoice_number=invoice.invoice_number,
            vendor_name=invoice.vendor_name,
            invoice_total=invoice.total,
            price_changes=price_changes,
            fee_changes=fee_changes,
            tracking_update=tracking_update,
            overall_verdict=verdict,
            total_dollar_impact=total,
            auto_applicable=is_auto_applicable(verdict),
            warnings=warnings,
            vendor_note=vendor_note,
            summary=summary,
        )

    # =========================================================================
    # Applying
    # =========================================================================

    async def apply(
        self,
        result: ReconciliationResult,
        approved_items: Iterable[str] = (),
        approved_fee_types: Iterable[FeeType] = (),
    ) -> ApplyResult:
        """Write the plan's auto-approved and explicitly approved changes."""
        with with_correlation(invoice_number=result.invoice_number, order_id=result.order_id, stage="apply"):
            apply_result = await apply_reconciliation(
                result,
                self.connector,
                self.tracking_store,
                approved_items,
                approved_fee_types,
                fail_open=self.fail_open,
            )
            logger.info(
                f"Applied {len(apply_result.applied)} change(s), "
                f"skipped {len(apply_result.skipped)}, {len(apply_result.errors)} error(s)"
            )
            return apply_result

    # =========================================================================
    # End-to-end processing
    # =========================================================================

    @asynccontextmanager
    async def _pair_lock(self, invoice_number: str, order_id: str):
        """Serialize processing of one invoice+order pair within this process."""
        key = (invoice_number, order_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def process(self, invoice: InvoiceData, order_id: str) -> ReconciliationOutcome:
        """Reconcile, then auto-apply, escalate or block.

        - auto_approve / no_change: apply now, log RECONCILIATION
        - needs_approval: store a pending approval, log RECONCILIATION_ESCALATED
        - rejected: apply nothing, log RECONCILIATION_BLOCKED
        - duplicate / no_match: apply nothing, log RECONCILIATION_SKIPPED
        """
        async with self._pair_lock(invoice.invoice_number, order_id):
            result = await self.reconcile(invoice, order_id)

            with with_correlation(invoice_number=invoice.invoice_number, order_id=order_id, stage="process"):
                audit_context = {
                    "invoice_number": result.invoice_number,
                    "order_id": result.order_id,
                    "vendor_name": result.vendor_name,
                }
                verdict = result.overall_verdict

                if verdict in (Verdict.DUPLICATE, Verdict.NO_MATCH):
                    await self.audit.log_info(
                        AuditEventType.RECONCILIATION_SKIPPED,
                        f"Skipped: {verdict.value}",
                        details={"verdict": verdict.value, "warnings": result.warnings},
                        **audit_context,
                    )
                    return ReconciliationOutcome(result=result)

                if result.auto_applicable:
                    apply_result = await self.apply(result)
                    await self.audit.log_info(
                        AuditEventType.RECONCILIATION,
                        f"Auto-applied: {len(apply_result.applied)} applied, {len(apply_result.errors)} errors",
                        details={
                            "verdict": verdict.value,
                            "applied": apply_result.applied,
                            "skipped": apply_result.skipped,
                            "errors": apply_result.errors,
                        },
                        **audit_context,
                    )
                    return ReconciliationOutcome(result=result, apply_result=apply_result)

                if verdict == Verdict.NEEDS_APPROVAL:
                    approval_id = self.approvals.store(result)
                    await self.audit.log_warning(
                        AuditEventType.RECONCILIATION_ESCALATED,
                        f"Awaiting approval {approval_id}",
                        approval_id=approval_id,
                        details={
                            "verdict": verdict.value,
                            "total_dollar_impact": str(result.total_dollar_impact),
                            "warnings": result.warnings,
                        },
                        **audit_context,
                    )
                    return ReconciliationOutcome(result=result, approval_id=approval_id)

                await self.audit.log_block(
                    AuditEventType.RECONCILIATION_BLOCKED,
                    "Blocked: magnitude error detected, no changes applied",
                    details={
                        "verdict": verdict.value,
                        "rejected": [pc.product_id for pc in result.price_changes if pc.verdict == Verdict.REJECTED],
                    },
                    **audit_context,
                )
                return ReconciliationOutcome(result=result)

    # =========================================================================
    # Approvals
    # =========================================================================

    def _unavailable(self, approval_id: str) -> ApprovalOutcome:
        status = self.approvals.terminal_status(approval_id)
        if status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            message = f"Already {status.value}."
        else:
            get_metrics().record_unknown_approval()
            message = NOT_FOUND_MESSAGE
        logger.warning(f"Approval {approval_id} unavailable: {message}")
        return ApprovalOutcome(success=False, message=message)

    async def approve_pending(self, approval_id: str, actor: str = "approver") -> ApprovalOutcome:
        """Approve every escalated item of a pending plan and apply it."""
        with with_correlation(approval_id=approval_id, stage="approve"):
            await self.expire_stale()
            entry = self.approvals.resolve(approval_id, ApprovalStatus.APPROVED)
            if entry is None:
                return self._unavailable(approval_id)

            result = entry.result
            apply_result = await self.apply(result, result.pending_price_items, result.pending_fee_types)

            await self.audit.log_info(
                AuditEventType.RECONCILIATION,
                f"Approved: {len(apply_result.applied)} applied, {len(apply_result.errors)} errors",
                invoice_number=result.invoice_number,
                order_id=result.order_id,
                vendor_name=result.vendor_name,
                approval_id=approval_id,
                details={"applied": apply_result.applied, "errors": apply_result.errors},
                actor=actor,
            )

            return ApprovalOutcome(
                success=True,
                applied=apply_result.applied,
                errors=apply_result.errors,
                message=f"Applied {len(apply_result.applied)} change(s) to PO {result.order_id}.",
            )

    async def reject_pending(self, approval_id: str, actor: str = "approver") -> ApprovalOutcome:
        """Reject a pending plan. Nothing is applied; the rejection is sticky."""
        with with_correlation(approval_id=approval_id, stage="reject"):
            await self.expire_stale()
            entry = self.approvals.resolve(approval_id, ApprovalStatus.REJECTED)
            if entry is None:
                return self._unavailable(approval_id)

            result = entry.result
            await self.audit.log_info(
                AuditEventType.RECONCILIATION,
                "Rejected, no changes applied",
                invoice_number=result.invoice_number,
                order_id=result.order_id,
                vendor_name=result.vendor_name,
                approval_id=approval_id,
                details={"verdict": Verdict.REJECTED.value},
                actor=actor,
            )

            return ApprovalOutcome(
                success=True,
                message=f"Rejected changes to PO {result.order_id}. No updates applied.",
            )

    async def _log_expired(self, entries: List[PendingApproval]) -> None:
        for entry in entries:
            await self.audit.log_warning(
                AuditEventType.APPROVAL_EXPIRED,
                "Pending approval expired without a decision",
                invoice_number=entry.result.invoice_number,
                order_id=entry.result.order_id,
                vendor_name=entry.result.vendor_name,
                approval_id=entry.id,
            )

    async def expire_stale(self) -> List[PendingApproval]:
        """Expire overdue approvals now and record them in the activity log."""
        expired = self.approvals.sweep_expired()
        await self._log_expired(expired)
        return expired

    def start(self, sweep_interval: float = 300.0) -> None:
        """Start background expiry of pending approvals."""
        self.approvals.start_sweeper(sweep_interval, on_expired=self._log_expired)

    async def stop(self) -> None:
        await self.approvals.stop_sweeper()
