"""Verdict aggregation and the total-impact cap."""

from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from core.config import DEFAULT_THRESHOLDS, ReconciliationThresholds
from reconciliation.models import FeeChange, PriceChange, TrackingUpdate, Verdict


# Higher ranks dominate. no_match lines are informational.
VERDICT_RANK = {
    Verdict.NO_CHANGE: 0,
    Verdict.NO_MATCH: 0,
    Verdict.AUTO_APPROVE: 1,
    Verdict.NEEDS_APPROVAL: 2,
    Verdict.REJECTED: 3,
}

AUTO_APPLICABLE = frozenset({Verdict.AUTO_APPROVE, Verdict.NO_CHANGE})


def total_dollar_impact(
    price_changes: Iterable[PriceChange],
    fee_changes: Iterable[FeeChange],
) -> Decimal:
    """Sum of absolute price impacts plus absolute fee deltas."""
    price_total = sum((abs(pc.dollar_impact) for pc in price_changes), Decimal("0"))
    fee_total = sum((fc.delta for fc in fee_changes), Decimal("0"))
    return price_total + fee_total


def apply_impact_cap(
    price_changes: Sequence[PriceChange],
    total_impact: Decimal,
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> List[PriceChange]:
    """Escalate every auto-approved price line when aggregate exposure is too high.

    Fee verdicts are capped per fee already and are not touched here.
    """
    cap = thresholds.total_impact_cap
    if total_impact <= cap:
        return list(price_changes)

    note = f" | Total PO impact ${total_impact:.2f} exceeds ${cap} cap"
    return [
        pc.model_copy(update={
            "verdict": Verdict.NEEDS_APPROVAL,
            "reason": pc.reason + note,
        }) if pc.verdict == Verdict.AUTO_APPROVE else pc
        for pc in price_changes
    ]


def overall_verdict(
    price_changes: Iterable[PriceChange],
    fee_changes: Iterable[FeeChange],
    tracking_update: Optional[TrackingUpdate] = None,
) -> Verdict:
    """Dominant verdict over all price and fee changes.

    rejected > needs_approval > auto_approve > no_change. A tracking update
    is an auto-applied write, so it lifts an otherwise empty plan to
    auto_approve.
    """
    verdicts = [pc.verdict for pc in price_changes] + [fc.verdict for fc in fee_changes]
    if tracking_update is not None:
        verdicts.append(Verdict.AUTO_APPROVE)

    if not verdicts:
        return Verdict.NO_CHANGE

    top = max(verdicts, key=lambda v: VERDICT_RANK[v])
    return Verdict.NO_CHANGE if top == Verdict.NO_MATCH else top


def is_auto_applicable(verdict: Verdict) -> bool:
    return verdict in AUTO_APPLICABLE
