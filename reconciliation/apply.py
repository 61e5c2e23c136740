"""Apply engine: write an approved reconciliation plan to the inventory system.

Every price write, fee write and the single tracking write is attempted on
its own; a failure becomes an `errors` entry and the remaining writes still
run. Nothing here raises for a per-item failure.
"""

import time
from typing import Any, Dict, Iterable, List

from connectors.inventory_base import FeeType, InventoryConnector
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from reconciliation.models import ApplyResult, ReconciliationResult, TrackingUpdate, Verdict
from reconciliation.tracking import (
    TrackingStore,
    deduplicate_tracking_numbers,
    save_tracking_numbers,
)


logger = get_logger(__name__)


def _is_approved(verdict: Verdict, key: str, approved: Iterable[str]) -> bool:
    if verdict == Verdict.AUTO_APPROVE:
        return True
    return verdict == Verdict.NEEDS_APPROVAL and key in approved


async def _apply_tracking(
    result: ReconciliationResult,
    tracking: TrackingUpdate,
    connector: InventoryConnector,
    tracking_store: TrackingStore,
    applied: List[str],
    skipped: List[str],
    fail_open: bool = True,
) -> None:
    dedup = await deduplicate_tracking_numbers(tracking.tracking_numbers, tracking_store, fail_open=fail_open)
    new_numbers = dedup.value

    if not new_numbers and not tracking.ship_date:
        skipped.append("Tracking: All tracking numbers already recorded")
        return

    details = await connector.get_order_details(result.order_id)
    if not details.shipment_refs:
        skipped.append("Tracking: No shipment found on PO to attach tracking to")
        return

    fields: Dict[str, Any] = {}
    if new_numbers:
        fields["tracking_code"] = new_numbers[0]
    if tracking.ship_date:
        fields["ship_date"] = tracking.ship_date
    if tracking.carrier_name:
        fields["private_notes"] = f"Carrier: {tracking.carrier_name}"

    await connector.update_shipment_tracking(details.shipment_refs[0], fields)
    applied.append(f"Tracking: {', '.join(new_numbers) or 'ship date updated'}")

    await save_tracking_numbers(new_numbers, result.invoice_number, tracking_store)


async def apply_reconciliation(
    result: ReconciliationResult,
    connector: InventoryConnector,
    tracking_store: TrackingStore,
    approved_items: Iterable[str] = (),
    approved_fee_types: Iterable[FeeType] = (),
    fail_open: bool = True,
) -> ApplyResult:
    """Apply the auto-approved (and explicitly approved) changes of a plan.

    Args:
        result: Plan produced by the engine
        connector: Inventory system to write to
        tracking_store: Store used to dedup tracking numbers
        approved_items: Product ids of needs_approval price lines a human approved
        approved_fee_types: Fee types of needs_approval fees a human approved
        fail_open: On tracking store failure, write every number (True) or none (False)

    Returns:
        ApplyResult with applied, skipped and errors lines
    """
    start = time.time()
    approved_items = set(approved_items)
    approved_fees = {FeeType(f).value for f in approved_fee_types}

    applied: List[str] = []
    skipped: List[str] = []
    errors: List[str] = []

    # 1. Price changes
    for pc in result.price_changes:
        if not _is_approved(pc.verdict, pc.product_id, approved_items):
            skipped.append(f"{pc.product_id}: {pc.reason}")
            continue

        try:
            await connector.update_order_item_price(result.order_id, pc.product_id, pc.invoice_price)
            applied.append(f"{pc.product_id}: ${pc.po_price:.2f} -> ${pc.invoice_price:.2f}")
        except Exception as e:
            logger.warning(f"Price update failed for {pc.product_id}: {e}")
            errors.append(f"{pc.product_id}: Failed - {e}")

    # 2. Fee changes
    for fc in result.fee_changes:
        if not _is_approved(fc.verdict, fc.fee_type.value, approved_fees):
            skipped.append(f"Fee: {fc.description} ${fc.amount:.2f} - {fc.reason}")
            continue

        if not fc.is_new:
            # TODO: update existing adjustments once connectors expose an adjustment update call
            skipped.append(
                f"Fee: {fc.description} already exists (${fc.existing_amount:.2f}), "
                f"invoice has ${fc.amount:.2f}"
            )
            continue

        try:
            await connector.add_order_adjustment(result.order_id, fc.fee_type, fc.amount, fc.description)
            applied.append(f"Fee: {fc.description} ${fc.amount:.2f}")
        except Exception as e:
            logger.warning(f"Fee adjustment failed for {fc.description}: {e}")
            errors.append(f"Fee {fc.description}: Failed - {e}")

    # 3. Tracking (at most one write)
    if result.tracking_update is not None:
        try:
            await _apply_tracking(
                result, result.tracking_update, connector, tracking_store, applied, skipped, fail_open,
            )
        except Exception as e:
            logger.warning(f"Tracking update failed: {e}")
            errors.append(f"Tracking update failed: {e}")

    duration_ms = (time.time() - start) * 1000
    get_metrics().record_apply(len(applied), len(skipped), len(errors), duration_ms)

    return ApplyResult(applied=applied, skipped=skipped, errors=errors)
