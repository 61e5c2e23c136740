"""End-to-end tests for the reconciliation engine against the in-memory connector."""

import asyncio
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from api.dependencies import build_engine
from conftest import ORDER_ID, build_invoice, build_order
from connectors.inventory_base import InventoryApiError, InventoryValidationError
from core.audit import AuditLogger, InMemoryAuditBackend
from core.audit.events import AuditEventType
from core.config import DEFAULT_THRESHOLDS, Settings
from core.models.canonical import InvoiceLineItem, OrderLineItem
from core.models.refs import AuditSeverity
from reconciliation.approvals import PendingApprovalRegistry
from reconciliation.engine import ReconciliationEngine
from reconciliation.models import ApprovalStatus, Verdict
from reconciliation.tracking import TrackingStore


class QueryFailingBackend(InMemoryAuditBackend):
    """Accepts writes, fails every read."""

    async def query(self, *args, **kwargs):
        raise ConnectionError("audit store down")


def events_of(backend, event_type):
    return [e for e in backend.events if e.event_type == event_type.value]


def price_writes(connector):
    return [w for w in connector.writes if w.operation == "update_order_item_price"]


class TestReconcilePlan:
    """reconcile() builds a plan and never writes."""

    def test_matching_invoice_is_no_change(self, engine, connector):
        result = asyncio.run(engine.reconcile(build_invoice(), ORDER_ID))
        assert result.overall_verdict == Verdict.NO_CHANGE
        assert result.auto_applicable
        assert result.total_dollar_impact == Decimal("0")
        assert connector.writes == []

    def test_small_increase_auto_approves(self, engine, connector):
        result = asyncio.run(engine.reconcile(build_invoice(price="2.65"), ORDER_ID))
        assert result.overall_verdict == Verdict.AUTO_APPROVE
        assert result.total_dollar_impact == Decimal("5.00")
        assert "[OK]" in result.summary
        assert connector.writes == []

    def test_magnitude_error_is_rejected(self, engine):
        result = asyncio.run(engine.reconcile(build_invoice(price="26.00"), ORDER_ID))
        assert result.overall_verdict == Verdict.REJECTED
        assert not result.auto_applicable
        assert "**BLOCKED:**" in result.summary

    def test_order_not_found(self, engine):
        result = asyncio.run(engine.reconcile(build_invoice(), "PO-0000"))
        assert result.overall_verdict == Verdict.NO_MATCH
        assert result.warnings == ["Could not find PO PO-0000"]
        assert result.price_changes == []

    def test_order_fetch_failure(self, engine, connector):
        connector.fail_on("get_order_summary", InventoryApiError("gateway timeout", 504))
        result = asyncio.run(engine.reconcile(build_invoice(), ORDER_ID))
        assert result.overall_verdict == Verdict.NO_MATCH
        assert result.warnings == [f"Could not fetch PO {ORDER_ID}: gateway timeout"]

    def test_vendor_mismatch_escalates_without_line_work(self, engine):
        invoice = build_invoice(vendor_name="Acme Hydroponics", sku="ZZZ-1")
        result = asyncio.run(engine.reconcile(invoice, ORDER_ID))
        assert result.overall_verdict == Verdict.NEEDS_APPROVAL
        assert result.price_changes == []
        assert result.warnings[0].startswith("VENDOR MISMATCH")
        assert result.vendor_note == result.warnings[0]

    def test_po_reference_vendor_match_warns(self, engine):
        invoice = build_invoice(vendor_name="BAS Distribution", po_number=ORDER_ID, price="2.65")
        result = asyncio.run(engine.reconcile(invoice, ORDER_ID))
        assert result.overall_verdict == Verdict.AUTO_APPROVE
        assert any("PO# reference" in w for w in result.warnings)

    def test_total_impact_cap_escalates_auto_approved_lines(self, engine, connector):
        connector.add_order(build_order(
            order_id="PO-3000",
            items=[OrderLineItem(product_id="SKU-100", unit_price=Decimal("100.00"), quantity=Decimal("200"))],
        ), shipment_refs=["SHIP-3"])
        invoice = build_invoice(price="102.00", qty="200", freight="400")

        result = asyncio.run(engine.reconcile(invoice, "PO-3000"))
        assert result.total_dollar_impact == Decimal("520.00")
        assert result.price_changes[0].verdict == Verdict.NEEDS_APPROVAL
        assert "exceeds $500 cap" in result.price_changes[0].reason
        assert result.fee_changes[0].verdict == Verdict.AUTO_APPROVE
        assert result.overall_verdict == Verdict.NEEDS_APPROVAL

    def test_tracking_alone_makes_plan_auto_approve(self, engine):
        result = asyncio.run(engine.reconcile(build_invoice(tracking_numbers=["1Z111"]), ORDER_ID))
        assert result.overall_verdict == Verdict.AUTO_APPROVE


class TestProcess:

    def test_auto_apply_writes_and_logs(self, engine, connector, audit_backend):
        outcome = asyncio.run(engine.process(build_invoice(price="2.65"), ORDER_ID))

        assert outcome.approval_id is None
        assert outcome.apply_result.applied == ["SKU-100: $2.60 -> $2.65"]
        assert len(price_writes(connector)) == 1
        [event] = events_of(audit_backend, AuditEventType.RECONCILIATION)
        assert event.invoice_number == "INV-1001"
        assert event.order_id == ORDER_ID

    def test_reprocessing_is_duplicate(self, engine, connector, audit_backend):
        invoice = build_invoice(price="2.65")
        asyncio.run(engine.process(invoice, ORDER_ID))
        second = asyncio.run(engine.process(invoice, ORDER_ID))

        assert second.result.overall_verdict == Verdict.DUPLICATE
        assert second.apply_result is None
        assert "Prior action:" in second.result.summary
        assert len(price_writes(connector)) == 1
        assert len(events_of(audit_backend, AuditEventType.RECONCILIATION_SKIPPED)) == 1

    def test_no_change_run_still_records_reconciliation(self, engine, audit_backend):
        asyncio.run(engine.process(build_invoice(), ORDER_ID))
        second = asyncio.run(engine.process(build_invoice(), ORDER_ID))
        assert second.result.overall_verdict == Verdict.DUPLICATE

    def test_rejected_plan_is_blocked(self, engine, connector, audit_backend):
        outcome = asyncio.run(engine.process(build_invoice(price="26.00"), ORDER_ID))

        assert outcome.apply_result is None
        assert outcome.approval_id is None
        assert connector.writes == []
        [event] = events_of(audit_backend, AuditEventType.RECONCILIATION_BLOCKED)
        assert event.severity == AuditSeverity.BLOCK
        assert event.details["rejected"] == ["SKU-100"]

    def test_missing_order_is_skipped(self, engine, audit_backend):
        outcome = asyncio.run(engine.process(build_invoice(), "PO-0000"))
        assert outcome.result.overall_verdict == Verdict.NO_MATCH
        assert len(events_of(audit_backend, AuditEventType.RECONCILIATION_SKIPPED)) == 1

    def test_price_failures_do_not_stop_other_writes(self, engine, connector):
        connector.fail_on("update_order_item_price", InventoryValidationError("order is locked"))
        invoice = build_invoice(
            line_items=[
                InvoiceLineItem(sku="SKU-100", qty="100", unit_price="2.65"),
                InvoiceLineItem(sku="SKU-200", qty="10", unit_price="15.30"),
            ],
            tax="10",
            total="428.00",
        )

        outcome = asyncio.run(engine.process(invoice, ORDER_ID))
        apply_result = outcome.apply_result
        assert apply_result.errors == [
            "SKU-100: Failed - order is locked",
            "SKU-200: Failed - order is locked",
        ]
        assert apply_result.applied == ["Fee: Tax $10.00"]

    def test_concurrent_processing_writes_once(self, engine, connector):
        invoice = build_invoice(price="2.65")

        async def run():
            return await asyncio.gather(
                engine.process(invoice, ORDER_ID),
                engine.process(invoice, ORDER_ID),
            )

        outcomes = asyncio.run(run())
        verdicts = sorted(o.result.overall_verdict.value for o in outcomes)
        assert verdicts == [Verdict.AUTO_APPROVE.value, Verdict.DUPLICATE.value]
        assert len(price_writes(connector)) == 1
        assert engine._locks == {}


class TestDuplicateCheckFailure:

    def test_fail_open_proceeds_with_warning(self, connector, tracking_store):
        engine = ReconciliationEngine(connector, AuditLogger([QueryFailingBackend()]), tracking_store)
        result = asyncio.run(engine.reconcile(build_invoice(price="2.65"), ORDER_ID))

        assert result.overall_verdict == Verdict.AUTO_APPROVE
        assert "Duplicate check unavailable (ConnectionError: audit store down)" in result.warnings

    def test_fail_closed_blocks_as_duplicate(self, connector, tracking_store):
        engine = ReconciliationEngine(
            connector, AuditLogger([QueryFailingBackend()]), tracking_store, fail_open=False,
        )
        outcome = asyncio.run(engine.process(build_invoice(price="2.65"), ORDER_ID))

        assert outcome.result.overall_verdict == Verdict.DUPLICATE
        assert "[DUPLICATE]" in outcome.result.summary
        assert connector.writes == []


class TestTrackingStoreFailure:

    def _engine(self, connector, audit, fail_open):
        store = MagicMock(spec=TrackingStore)
        store.find_existing = AsyncMock(side_effect=ConnectionError("tracking store down"))
        return ReconciliationEngine(connector, audit, store, fail_open=fail_open)

    def test_fail_closed_writes_no_tracking(self, connector, audit):
        engine = self._engine(connector, audit, fail_open=False)
        outcome = asyncio.run(engine.process(build_invoice(tracking_numbers=["1Z999"]), ORDER_ID))

        assert connector.shipment_fields("SHIP-1") == {}
        assert not [w for w in connector.writes if w.operation == "update_shipment_tracking"]
        assert "Tracking: All tracking numbers already recorded" in outcome.apply_result.skipped

    def test_fail_open_writes_tracking(self, connector, audit):
        engine = self._engine(connector, audit, fail_open=True)
        asyncio.run(engine.process(build_invoice(tracking_numbers=["1Z999"]), ORDER_ID))

        assert connector.shipment_fields("SHIP-1")["tracking_code"] == "1Z999"


class TestApprovals:

    def _escalate(self, engine):
        outcome = asyncio.run(engine.process(build_invoice(price="2.68"), ORDER_ID))
        assert outcome.result.overall_verdict == Verdict.NEEDS_APPROVAL
        assert outcome.approval_id is not None
        return outcome.approval_id

    def test_escalation_is_logged_and_nothing_written(self, engine, connector, audit_backend):
        approval_id = self._escalate(engine)
        assert connector.writes == []
        [event] = events_of(audit_backend, AuditEventType.RECONCILIATION_ESCALATED)
        assert event.approval_id == approval_id
        assert event.severity == AuditSeverity.WARN

    def test_pending_escalation_is_not_a_duplicate(self, engine):
        self._escalate(engine)
        second = asyncio.run(engine.reconcile(build_invoice(price="2.68"), ORDER_ID))
        assert second.overall_verdict == Verdict.NEEDS_APPROVAL

    def test_approve_applies_escalated_items(self, engine, connector, audit_backend):
        approval_id = self._escalate(engine)
        outcome = asyncio.run(engine.approve_pending(approval_id, actor="ops@example.com"))

        assert outcome.success
        assert outcome.applied == ["SKU-100: $2.60 -> $2.68"]
        assert outcome.message == f"Applied 1 change(s) to PO {ORDER_ID}."
        assert price_writes(connector)[0].payload["price"] == Decimal("2.68")

        [event] = events_of(audit_backend, AuditEventType.RECONCILIATION)
        assert event.actor == "ops@example.com"
        assert event.approval_id == approval_id

    def test_second_approval_is_refused(self, engine, connector):
        approval_id = self._escalate(engine)
        asyncio.run(engine.approve_pending(approval_id))
        again = asyncio.run(engine.approve_pending(approval_id))

        assert not again.success
        assert again.message == "Already approved."
        assert len(price_writes(connector)) == 1

    def test_concurrent_approvals_apply_once(self, engine, connector):
        approval_id = self._escalate(engine)

        async def run():
            return await asyncio.gather(
                engine.approve_pending(approval_id),
                engine.approve_pending(approval_id),
            )

        outcomes = asyncio.run(run())
        assert sorted(o.success for o in outcomes) == [False, True]
        assert len(price_writes(connector)) == 1

    def test_reject_is_sticky(self, engine, connector):
        approval_id = self._escalate(engine)
        outcome = asyncio.run(engine.reject_pending(approval_id))

        assert outcome.success
        assert outcome.message == f"Rejected changes to PO {ORDER_ID}. No updates applied."
        assert connector.writes == []

        rerun = asyncio.run(engine.process(build_invoice(price="2.68"), ORDER_ID))
        assert rerun.result.overall_verdict == Verdict.DUPLICATE

        approve_after = asyncio.run(engine.approve_pending(approval_id))
        assert approve_after.message == "Already rejected."

    def test_unknown_id(self, engine):
        outcome = asyncio.run(engine.approve_pending("recon_PO-1_0_abcdef"))
        assert not outcome.success
        assert outcome.message == "Approval not found or expired."

    def test_expired_approval(self, engine, clock, connector, audit_backend):
        approval_id = self._escalate(engine)
        clock.advance(hours=25)

        outcome = asyncio.run(engine.approve_pending(approval_id))
        assert outcome.message == "Approval not found or expired."
        assert connector.writes == []
        assert engine.approvals.terminal_status(approval_id) == ApprovalStatus.EXPIRED
        [event] = events_of(audit_backend, AuditEventType.APPROVAL_EXPIRED)
        assert event.approval_id == approval_id

    def test_expire_stale(self, engine, clock):
        approval_id = self._escalate(engine)
        clock.advance(hours=24)
        expired = asyncio.run(engine.expire_stale())
        assert [e.id for e in expired] == [approval_id]
        assert engine.approvals.list_pending() == []

    def test_injected_empty_registry_is_kept(self, connector, audit, clock):
        registry = PendingApprovalRegistry(ttl=timedelta(hours=1), clock=clock)
        engine = ReconciliationEngine(connector, audit, approvals=registry)
        assert engine.approvals is registry

        approval_id = self._escalate(engine)
        clock.advance(hours=1)
        assert [e.id for e in asyncio.run(engine.expire_stale())] == [approval_id]

    def test_configured_ttl_reaches_registry(self):
        settings = Settings(thresholds=replace(DEFAULT_THRESHOLDS, approval_ttl=timedelta(hours=2)))
        engine = build_engine(settings)
        assert engine.approvals.ttl == timedelta(hours=2)

        default = ReconciliationEngine(engine.connector, engine.audit, thresholds=settings.thresholds)
        assert default.approvals.ttl == timedelta(hours=2)
