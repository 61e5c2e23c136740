"""Tracking extraction and cross-invoice deduplication.

The same carrier tracking number often shows up on several related
documents (invoice, packing slip, BOL). Numbers already recorded against any
invoice are filtered out before writing to the order's shipment.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

from core.audit.events import AuditEventType, AuditLogger
from core.models.canonical import InvoiceData
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from core.result import LookupResult
from reconciliation.models import TrackingUpdate


logger = get_logger(__name__)


def normalize_tracking_number(number: str) -> str:
    return number.strip().upper()


def reconcile_tracking(invoice: InvoiceData) -> Optional[TrackingUpdate]:
    """Extract tracking data from the invoice, or None when there is none."""
    numbers = [n.strip() for n in invoice.tracking_numbers if n and n.strip()]
    if not numbers and not invoice.ship_date:
        return None

    return TrackingUpdate(
        tracking_numbers=numbers,
        ship_date=invoice.ship_date,
        carrier_name=invoice.carrier_name,
    )


# =============================================================================
# Tracking Stores
# =============================================================================

class TrackingStore(ABC):
    """Record of tracking numbers already written, keyed by number."""

    @abstractmethod
    async def find_existing(self, numbers: List[str]) -> Set[str]:
        """Return the normalized numbers among `numbers` that are already recorded."""
        pass

    @abstractmethod
    async def record(self, numbers: List[str], invoice_number: str) -> None:
        """Record numbers as written for the given invoice."""
        pass


class InMemoryTrackingStore(TrackingStore):
    """Process-local tracking store for testing and local runs."""

    def __init__(self):
        self._numbers: Dict[str, str] = {}

    async def find_existing(self, numbers: List[str]) -> Set[str]:
        wanted = {normalize_tracking_number(n) for n in numbers}
        return wanted & set(self._numbers)

    async def record(self, numbers: List[str], invoice_number: str) -> None:
        for number in numbers:
            self._numbers.setdefault(normalize_tracking_number(number), invoice_number)

    def invoice_for(self, number: str) -> Optional[str]:
        """Invoice that first recorded the number."""
        return self._numbers.get(normalize_tracking_number(number))


class AuditTrackingStore(TrackingStore):
    """Tracking store derived from TRACKING_RECORDED events in the activity log."""

    def __init__(self, audit: AuditLogger, scan_limit: int = 10000):
        self.audit = audit
        self.scan_limit = scan_limit

    async def find_existing(self, numbers: List[str]) -> Set[str]:
        wanted = {normalize_tracking_number(n) for n in numbers}
        events = await self.audit.query(
            event_type=AuditEventType.TRACKING_RECORDED.value,
            limit=self.scan_limit,
        )
        recorded: Set[str] = set()
        for event in events:
            for number in event.details.get("tracking_numbers", []):
                recorded.add(normalize_tracking_number(number))
        return wanted & recorded

    async def record(self, numbers: List[str], invoice_number: str) -> None:
        await self.audit.log_info(
            AuditEventType.TRACKING_RECORDED,
            f"Recorded {len(numbers)} tracking number(s)",
            invoice_number=invoice_number,
            details={"tracking_numbers": list(numbers)},
        )


# =============================================================================
# Deduplication
# =============================================================================

async def deduplicate_tracking_numbers(
    numbers: Iterable[str],
    store: TrackingStore,
    fail_open: bool = True,
) -> LookupResult[List[str]]:
    """Filter out tracking numbers already recorded against any invoice.

    Args:
        numbers: Tracking numbers from the invoice
        store: Where previously written numbers are recorded
        fail_open: On store failure, treat every number as new (True) or
            every number as already recorded (False)

    Returns:
        LookupResult wrapping the numbers still to write, in input order.
    """
    numbers = list(numbers)
    if not numbers:
        return LookupResult.ok([])

    try:
        existing = await store.find_existing(numbers)
    except Exception as e:
        get_metrics().record_fail_open("tracking_dedup")
        if fail_open:
            logger.warning(f"Tracking dedup failed, writing all: {e}", extra_fields={"fail_open": True})
            return LookupResult.failed(numbers, e)
        logger.warning(f"Tracking dedup failed, writing none: {e}", extra_fields={"fail_open": False})
        return LookupResult.failed([], e)

    new_numbers = [n for n in numbers if normalize_tracking_number(n) not in existing]

    if len(new_numbers) < len(numbers):
        logger.info(
            f"Tracking dedup: {len(numbers) - len(new_numbers)} duplicate(s) filtered, "
            f"{len(new_numbers)} new"
        )
    else:
        logger.debug(f"Tracking dedup: all {len(numbers)} number(s) new")

    return LookupResult.ok(new_numbers)


async def save_tracking_numbers(
    numbers: List[str],
    invoice_number: str,
    store: TrackingStore,
) -> None:
    """Record written numbers for future dedup. Failures are logged, not raised."""
    if not numbers:
        return
    try:
        await store.record(numbers, invoice_number)
    except Exception as e:
        logger.warning(f"Failed to save tracking numbers: {e}")
