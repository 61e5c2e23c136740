"""Fee reconciliation: invoice charges vs. order adjustments."""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from connectors.inventory_base import FeeType
from core.config import DEFAULT_THRESHOLDS, ReconciliationThresholds
from core.models.canonical import InvoiceData, OrderAdjustment, OrderSummary
from reconciliation.models import FeeChange, Verdict


@dataclass(frozen=True)
class FeeCategory:
    """Maps an invoice charge field to an order adjustment type."""
    invoice_field: str
    fee_type: FeeType
    label: str
    aliases: Tuple[str, ...] = ()

    def matches(self, adjustment_description: str) -> bool:
        desc = adjustment_description.lower()
        return any(term.lower() in desc for term in (self.label,) + self.aliases)


FEE_CATEGORIES: Tuple[FeeCategory, ...] = (
    FeeCategory("freight", FeeType.FREIGHT, "Freight"),
    FeeCategory("tax", FeeType.TAX, "Tax"),
    FeeCategory("tariff", FeeType.TARIFF, "Duties/Tariff", aliases=("Tariff", "Duties")),
    FeeCategory("labor", FeeType.LABOR, "Labor"),
    FeeCategory("fuel_surcharge", FeeType.SHIPPING, "Fuel Surcharge"),
)


def find_existing_adjustment(
    category: FeeCategory,
    adjustments: List[OrderAdjustment],
) -> Optional[OrderAdjustment]:
    for adjustment in adjustments:
        if category.matches(adjustment.description):
            return adjustment
    return None


def reconcile_fees(
    invoice: InvoiceData,
    order: OrderSummary,
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> List[FeeChange]:
    """Compare each billed invoice charge against the order's adjustments.

    Only the delta between the invoice fee and the fee already on the order
    is gated: $300 freight on an order that already carries $280 freight is
    a $20 change.
    """
    changes: List[FeeChange] = []
    cap = thresholds.fee_auto_approve_cap

    for category in FEE_CATEGORIES:
        amount: Optional[Decimal] = getattr(invoice, category.invoice_field)
        if amount is None or amount <= 0:
            continue

        existing = find_existing_adjustment(category, order.adjustments)
        existing_amount = existing.amount if existing is not None else Decimal("0")

        delta = abs(amount - existing_amount)
        if delta < thresholds.price_epsilon:
            continue

        if delta <= cap:
            verdict = Verdict.AUTO_APPROVE
            reason = f"Fee delta ${delta:.2f} within ${cap} auto-approve cap"
        else:
            verdict = Verdict.NEEDS_APPROVAL
            reason = f"Fee delta ${delta:.2f} exceeds ${cap} auto-approve cap, requires approval"

        changes.append(FeeChange(
            fee_type=category.fee_type,
            amount=amount,
            description=category.label,
            existing_amount=existing_amount,
            is_new=existing_amount == 0,
            verdict=verdict,
            reason=reason,
        ))

    return changes
