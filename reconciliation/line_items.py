"""Line item matching and price safety evaluation.

Each invoice line is matched to at most one order line and the proposed
price change is run through layered guardrails:

1. Equal prices -> no_change
2. Magnitude shift of 10x or more either way -> rejected (decimal error)
3. Zero-priced order line -> needs_approval (placeholder PO line)
4. High-value unit price -> needs_approval
5. Percentage threshold -> auto_approve or needs_approval

A quantity overbill on an otherwise safe line is escalated as well.
"""

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from core.config import DEFAULT_THRESHOLDS, ReconciliationThresholds
from core.models.canonical import InvoiceData, InvoiceLineItem, OrderLineItem, OrderSummary
from reconciliation.models import PriceChange, Verdict


ZERO = Decimal("0")
HUNDRED = Decimal("100")


# =============================================================================
# Matching
# =============================================================================

def find_matching_order_line(
    line: InvoiceLineItem,
    order_items: Sequence[OrderLineItem],
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> Optional[OrderLineItem]:
    """Find the order line an invoice line refers to.

    Strategies, in order:
    1. Exact SKU (case-insensitive)
    2. SKU substring either way (vendors add prefixes/suffixes)
    3. Description prefix substring either way
    4. Unit price, when exactly one order line has that price
    """
    if line.sku:
        sku = line.sku.lower()
        for item in order_items:
            if item.product_id.lower() == sku:
                return item

        for item in order_items:
            product_id = item.product_id.lower()
            if product_id and (sku in product_id or product_id in sku):
                return item

    if line.description:
        prefix = thresholds.description_prefix
        desc = line.description.lower()[:prefix]
        for item in order_items:
            item_desc = item.description.lower()
            if not item_desc:
                continue
            if desc in item_desc or item_desc[:prefix] in desc:
                return item

    price_matches = [
        item for item in order_items
        if abs(item.unit_price - line.unit_price) < thresholds.price_epsilon
    ]
    if len(price_matches) == 1:
        return price_matches[0]

    return None


# =============================================================================
# Price Safety
# =============================================================================

def compute_percent_change(po_price: Decimal, invoice_price: Decimal) -> Decimal:
    """Absolute change as a percentage of the PO price."""
    if po_price > 0:
        return abs(invoice_price - po_price) / po_price * HUNDRED
    return HUNDRED if invoice_price > 0 else ZERO


def evaluate_price_change(
    po_price: Decimal,
    invoice_price: Decimal,
    percent_change: Decimal,
    dollar_impact: Decimal,
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[Verdict, str]:
    """Run one price change through the safety layers.

    Returns:
        (verdict, reason)
    """
    if abs(po_price - invoice_price) < thresholds.price_epsilon:
        return Verdict.NO_CHANGE, "Prices match"

    # $2.60 -> $26.00 is a 10x shift
    if po_price > 0 and invoice_price > 0:
        ratio = invoice_price / po_price
        ceiling = thresholds.magnitude_ceiling
        if ratio >= ceiling or ratio <= 1 / ceiling:
            return Verdict.REJECTED, (
                f"MAGNITUDE ERROR: Price changed from ${po_price:.2f} -> ${invoice_price:.2f} "
                f"({ratio:.1f}x). This looks like a decimal error. NOT applied, requires manual correction."
            )

    if po_price == 0 and invoice_price > 0:
        return Verdict.NEEDS_APPROVAL, (
            f"PO had $0.00 price, invoice shows ${invoice_price:.2f}. May be a placeholder PO line."
        )

    if invoice_price > thresholds.high_value_threshold:
        return Verdict.NEEDS_APPROVAL, (
            f"High-value item (${invoice_price:.2f}/unit) requires manual review regardless of % change."
        )

    direction = "increase" if dollar_impact > 0 else "decrease"
    if percent_change <= thresholds.auto_approve_percent:
        return Verdict.AUTO_APPROVE, (
            f"{percent_change:.1f}% price {direction} (${po_price:.2f} -> ${invoice_price:.2f}), "
            f"within {thresholds.auto_approve_percent}% auto-threshold."
        )

    return Verdict.NEEDS_APPROVAL, (
        f"{percent_change:.1f}% price {direction} (${po_price:.2f} -> ${invoice_price:.2f}, "
        f"impact: ${abs(dollar_impact):.2f}), exceeds {thresholds.auto_approve_percent}% auto-threshold."
    )


# =============================================================================
# Line Reconciliation
# =============================================================================

def reconcile_line_item(
    line: InvoiceLineItem,
    order: OrderSummary,
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> PriceChange:
    """Produce the proposed price change for one invoice line."""
    order_line = find_matching_order_line(line, order.items, thresholds)

    if order_line is None:
        return PriceChange(
            product_id=line.sku or "UNKNOWN",
            description=line.description,
            po_price=ZERO,
            invoice_price=line.unit_price,
            quantity=line.qty,
            percent_change=HUNDRED,
            dollar_impact=line.line_total,
            verdict=Verdict.NO_MATCH,
            reason="Invoice line item not found in PO, may be a new item or SKU mismatch",
        )

    percent_change = compute_percent_change(order_line.unit_price, line.unit_price)
    dollar_impact = (line.unit_price - order_line.unit_price) * line.qty

    verdict, reason = evaluate_price_change(
        order_line.unit_price,
        line.unit_price,
        percent_change,
        dollar_impact,
        thresholds,
    )

    # Billing for more units than ordered is suspicious even at a safe price
    if verdict == Verdict.AUTO_APPROVE and line.qty > order_line.quantity:
        verdict = Verdict.NEEDS_APPROVAL
        reason += (
            f" | OVERBILL: Invoice qty {line.qty} > PO qty {order_line.quantity}, "
            "may be billed for more units than ordered."
        )

    return PriceChange(
        product_id=order_line.product_id,
        description=line.description,
        po_price=order_line.unit_price,
        invoice_price=line.unit_price,
        quantity=line.qty,
        percent_change=percent_change,
        dollar_impact=dollar_impact,
        verdict=verdict,
        reason=reason,
    )


def reconcile_line_items(
    invoice: InvoiceData,
    order: OrderSummary,
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> List[PriceChange]:
    """One PriceChange per invoice line, in invoice order."""
    return [reconcile_line_item(line, order, thresholds) for line in invoice.line_items]
