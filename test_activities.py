"""Temporal activity tests using the SDK's ActivityEnvironment."""

import asyncio

from temporalio.testing import ActivityEnvironment

from conftest import ORDER_ID, build_invoice
from activities.reconcile import (
    ApprovalDecisionInput,
    ReconcileInvoiceInput,
    ReconciliationActivities,
)


def _input(price: str, **overrides) -> ReconcileInvoiceInput:
    invoice = build_invoice(price=price, **overrides)
    return ReconcileInvoiceInput(invoice=invoice.model_dump(mode="json", by_alias=True), order_id=ORDER_ID)


class TestReconcileInvoiceActivity:

    def test_auto_applied_invoice(self, engine):
        activities = ReconciliationActivities(engine)
        env = ActivityEnvironment()

        output = asyncio.run(env.run(activities.reconcile_invoice, _input("2.65")))

        assert output.verdict == "auto_approve"
        assert output.approval_id is None
        assert output.applied == ["SKU-100: $2.60 -> $2.65"]
        assert output.apply_report.startswith(f"Applied 1 change(s) to PO {ORDER_ID}.")
        assert output.total_dollar_impact == "5.00"

    def test_escalated_invoice_returns_approval_id(self, engine, connector):
        activities = ReconciliationActivities(engine)
        env = ActivityEnvironment()

        output = asyncio.run(env.run(activities.reconcile_invoice, _input("2.68")))

        assert output.verdict == "needs_approval"
        assert output.approval_id is not None
        assert output.applied == []
        assert output.apply_report == ""
        assert connector.writes == []

    def test_approve_then_reject_same_id(self, engine):
        activities = ReconciliationActivities(engine)
        env = ActivityEnvironment()

        escalated = asyncio.run(env.run(activities.reconcile_invoice, _input("2.68")))
        decision = ApprovalDecisionInput(approval_id=escalated.approval_id, actor="ops")

        approved = asyncio.run(env.run(activities.approve_reconciliation, decision))
        assert approved.success
        assert approved.applied == ["SKU-100: $2.60 -> $2.68"]

        rejected = asyncio.run(env.run(activities.reject_reconciliation, decision))
        assert not rejected.success
        assert rejected.message == "Already approved."

    def test_all_lists_every_activity(self, engine):
        names = [fn.__name__ for fn in ReconciliationActivities(engine).all()]
        assert names == ["reconcile_invoice", "approve_reconciliation", "reject_reconciliation"]
