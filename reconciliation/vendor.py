"""Vendor correlation: does this invoice belong to this order?

Three-signal waterfall, first match wins:
1. Vendor name word overlap (Jaccard) at or above threshold -> HIGH
2. Invoice PO reference matches the order id -> MEDIUM
3. At least half of the invoice SKUs appear on the order -> MEDIUM

No signal means LOW confidence and the reconciliation is escalated with no
computed changes.
"""

import re
from decimal import Decimal
from typing import Iterable, Optional, Set

from core.config import DEFAULT_THRESHOLDS, ReconciliationThresholds
from reconciliation.models import VendorConfidence, VendorCorrelation


_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def _words(name: str) -> Set[str]:
    return set(_NON_ALNUM.sub("", (name or "").lower()).split())


def word_overlap_similarity(a: str, b: str) -> Decimal:
    """Jaccard similarity of the word sets of two names (0 to 1).

    "BuildASoil Organics" vs "BuildASoil Organics LLC" -> 2/3
    """
    words_a = _words(a)
    words_b = _words(b)
    if not words_a or not words_b:
        return Decimal("0")
    return Decimal(len(words_a & words_b)) / Decimal(len(words_a | words_b))


def po_reference_matches(invoice_po_ref: Optional[str], order_id: str) -> bool:
    """True when the invoice's PO reference equals, contains or is contained by the order id."""
    ref = (invoice_po_ref or "").strip().lower()
    order = (order_id or "").strip().lower()
    if not ref or not order:
        return False
    return ref == order or order in ref or ref in order


def correlate_vendor(
    invoice_vendor: str,
    order_supplier: str,
    invoice_po_ref: Optional[str],
    order_id: str,
    invoice_skus: Iterable[str],
    order_skus: Iterable[str],
    thresholds: ReconciliationThresholds = DEFAULT_THRESHOLDS,
) -> VendorCorrelation:
    """Decide whether the invoice plausibly belongs to the order's supplier."""
    similarity = word_overlap_similarity(invoice_vendor, order_supplier)
    if similarity >= thresholds.vendor_fuzzy_threshold:
        return VendorCorrelation(
            passed=True,
            confidence=VendorConfidence.HIGH,
            note=(
                f'Vendor matched: "{invoice_vendor}" <-> "{order_supplier}" '
                f"({similarity * 100:.0f}% word overlap)"
            ),
        )

    if po_reference_matches(invoice_po_ref, order_id):
        return VendorCorrelation(
            passed=True,
            confidence=VendorConfidence.MEDIUM,
            note=(
                f'Vendor name mismatch ("{invoice_vendor}" vs PO supplier "{order_supplier}"), '
                f"confirmed via PO# reference on invoice ({invoice_po_ref})."
            ),
        )

    order_set = {sku.lower() for sku in order_skus if sku}
    inv_skus = [sku.lower() for sku in invoice_skus if sku]
    if inv_skus:
        matched = sum(1 for sku in inv_skus if sku in order_set)
        if Decimal(matched) / Decimal(len(inv_skus)) >= thresholds.sku_overlap_threshold:
            return VendorCorrelation(
                passed=True,
                confidence=VendorConfidence.MEDIUM,
                note=(
                    f'Vendor name mismatch ("{invoice_vendor}" vs PO supplier "{order_supplier}"), '
                    f"confirmed by {matched}/{len(inv_skus)} SKU matches."
                ),
            )

    return VendorCorrelation(
        passed=False,
        confidence=VendorConfidence.LOW,
        note=(
            f'VENDOR MISMATCH: Invoice vendor "{invoice_vendor}" does not correlate with '
            f'PO supplier "{order_supplier}". No PO# or SKU evidence to confirm. '
            "Manual review required."
        ),
    )
