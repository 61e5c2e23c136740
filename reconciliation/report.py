"""Human-readable reconciliation reports for the messaging layer."""

from decimal import Decimal
from typing import List, Optional, Sequence

from core.models.canonical import InvoiceData
from reconciliation.models import (
    ApplyResult,
    ApprovalOutcome,
    FeeChange,
    PriceChange,
    TrackingUpdate,
    Verdict,
)


VERDICT_MARKERS = {
    Verdict.AUTO_APPROVE: "[OK]",
    Verdict.REJECTED: "[BLOCKED]",
    Verdict.DUPLICATE: "[DUPLICATE]",
    Verdict.NEEDS_APPROVAL: "[REVIEW]",
}


def _marker(verdict: Verdict) -> str:
    return VERDICT_MARKERS.get(verdict, "[INFO]")


def build_reconciliation_summary(
    order_id: str,
    invoice: InvoiceData,
    price_changes: Sequence[PriceChange],
    fee_changes: Sequence[FeeChange],
    tracking_update: Optional[TrackingUpdate],
    total_dollar_impact: Decimal,
    verdict: Verdict,
    warnings: Sequence[str] = (),
    prior_action: Optional[str] = None,
) -> str:
    """Render a reconciliation plan as markdown-ish text."""
    lines: List[str] = [
        f"{_marker(verdict)} **Invoice Reconciliation: {invoice.invoice_number} -> PO {order_id}**",
        f"Vendor: {invoice.vendor_name} | Invoice Total: ${invoice.total:.2f}",
        "",
    ]

    if warnings:
        lines.append("**Warnings:**")
        lines.extend(f"  {w}" for w in warnings)
        lines.append("")

    if verdict == Verdict.DUPLICATE:
        lines.append(
            "**DUPLICATE:** This invoice+PO combination has already been reconciled. No changes applied."
        )
        if prior_action:
            lines.append(f"Prior action: {prior_action}")
        return "\n".join(lines)

    meaningful = [pc for pc in price_changes if pc.verdict not in (Verdict.NO_CHANGE, Verdict.NO_MATCH)]
    if meaningful:
        lines.append("**Price Changes:**")
        for pc in meaningful:
            lines.append(
                f"{_marker(pc.verdict)} {pc.product_id}: ${pc.po_price:.2f} -> ${pc.invoice_price:.2f} "
                f"({pc.percent_change:.1f}%, ${abs(pc.dollar_impact):.2f} impact)"
            )
            if "OVERBILL" in pc.reason:
                lines.append(f"  {pc.reason.split('|')[-1].strip()}")
        lines.append("")

    unmatched = [pc for pc in price_changes if pc.verdict == Verdict.NO_MATCH]
    if unmatched:
        lines.append("**Unmatched Invoice Lines:**")
        for pc in unmatched:
            label = pc.product_id if pc.product_id != "UNKNOWN" else pc.description[:40]
            lines.append(f"[?] {label}: ${pc.invoice_price:.2f} x {pc.quantity}")
        lines.append("")

    if fee_changes:
        lines.append("**Fee/Charge Updates:**")
        for fc in fee_changes:
            label = "NEW" if fc.is_new else f"was ${fc.existing_amount:.2f}"
            lines.append(f"{_marker(fc.verdict)} {fc.description}: ${fc.amount:.2f} ({label})")
            if fc.verdict == Verdict.NEEDS_APPROVAL:
                lines.append(f"  {fc.reason}")
        lines.append("")

    if tracking_update is not None:
        lines.append("**Tracking:**")
        if tracking_update.tracking_numbers:
            lines.append(f"Tracking numbers: {', '.join(tracking_update.tracking_numbers)}")
        if tracking_update.ship_date:
            lines.append(f"Ship date: {tracking_update.ship_date}")
        if tracking_update.carrier_name:
            lines.append(f"Carrier: {tracking_update.carrier_name}")
        lines.append("")

    lines.append(f"**Total Dollar Impact:** ${total_dollar_impact:.2f}")

    if verdict == Verdict.AUTO_APPROVE:
        lines.append("All changes within auto-approval thresholds. Applying automatically.")
    elif verdict == Verdict.REJECTED:
        lines.append("**BLOCKED:** Magnitude error detected. Manual correction required.")
    elif verdict == Verdict.NEEDS_APPROVAL:
        lines.append("**Awaiting approval.** Some changes exceed auto-approval thresholds.")
    elif verdict == Verdict.NO_CHANGE:
        lines.append("No changes needed.")

    return "\n".join(lines)


def format_apply_result(apply_result: ApplyResult, order_id: Optional[str] = None) -> str:
    """Render what an apply run did."""
    header = f"Applied {len(apply_result.applied)} change(s)"
    if order_id:
        header += f" to PO {order_id}"
    lines = [header + "."]

    for entry in apply_result.applied:
        lines.append(f"  + {entry}")
    if apply_result.skipped:
        lines.append(f"Skipped {len(apply_result.skipped)}:")
        lines.extend(f"  - {entry}" for entry in apply_result.skipped)
    if apply_result.errors:
        lines.append(f"Errors {len(apply_result.errors)}:")
        lines.extend(f"  ! {entry}" for entry in apply_result.errors)

    return "\n".join(lines)


def format_approval_outcome(outcome: ApprovalOutcome) -> str:
    """Render the reply to an approve/reject decision."""
    lines = [outcome.message]
    lines.extend(f"  + {entry}" for entry in outcome.applied)
    lines.extend(f"  ! {entry}" for entry in outcome.errors)
    return "\n".join(lines)
