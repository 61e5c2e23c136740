"""Duplicate detection against the activity log.

An invoice+order pair that already has a RECONCILIATION event (written when
changes were auto-applied, approved or rejected) must not be reconciled
again. Rejections are sticky for the same reason.
"""

from core.audit.events import AuditEventType, AuditLogger
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from core.result import LookupResult
from reconciliation.models import DuplicateCheck


logger = get_logger(__name__)

NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


class DuplicateDetector:
    """Looks up prior completed reconciliations of an invoice+order pair."""

    def __init__(self, audit: AuditLogger):
        self.audit = audit

    async def check(
        self,
        invoice_number: str,
        order_id: str,
        fail_open: bool = True,
    ) -> LookupResult[DuplicateCheck]:
        """Check the activity log for a prior reconciliation.

        Args:
            invoice_number: Invoice being processed
            order_id: Order it is matched to
            fail_open: On query failure, report "not a duplicate" (True) or
                block as if it were one (False)

        Returns:
            LookupResult wrapping the DuplicateCheck; `error` is set when the
            activity log could not be queried.
        """
        try:
            events = await self.audit.query(
                event_type=AuditEventType.RECONCILIATION.value,
                invoice_number=invoice_number,
                order_id=order_id,
                limit=1,
            )
        except Exception as e:
            get_metrics().record_fail_open("duplicate_check")
            if fail_open:
                logger.warning(
                    f"Duplicate check failed, proceeding anyway: {e}",
                    extra_fields={"fail_open": True},
                )
                return LookupResult.failed(NOT_DUPLICATE, e)

            logger.warning(
                f"Duplicate check failed, treating as duplicate: {e}",
                extra_fields={"fail_open": False},
            )
            return LookupResult.failed(
                DuplicateCheck(is_duplicate=True, action_taken="Duplicate check unavailable"),
                e,
            )

        if not events:
            return LookupResult.ok(NOT_DUPLICATE)

        latest = events[0]
        return LookupResult.ok(DuplicateCheck(
            is_duplicate=True,
            processed_at=latest.timestamp,
            action_taken=latest.message,
        ))
