"""Pending approval registry.

Holds escalated reconciliation plans until a human approves or rejects them.
In-process and not durable: a restart drops unresolved approvals, and the
invoice is simply reconciled again on its next delivery.

State machine per entry:

    pending --approve--> approved
    pending --reject---> rejected
    pending --ttl------> expired

Every transition removes the entry. A tombstone of the terminal status is
kept for a while so repeated decisions get an explicit "Already approved."
instead of a generic "not found".
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from threading import Lock
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from reconciliation.models import ApprovalStatus, PendingApproval, ReconciliationResult


logger = get_logger(__name__)

Clock = Callable[[], datetime]
ExpiredCallback = Callable[[List[PendingApproval]], Awaitable[None]]


class PendingApprovalRegistry:
    """Keyed registry of pending approvals with TTL expiry.

    Usage:
        registry = PendingApprovalRegistry(ttl=timedelta(hours=24))
        approval_id = registry.store(result)
        entry = registry.resolve(approval_id, ApprovalStatus.APPROVED)
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
        tombstone_ttl: Optional[timedelta] = None,
    ):
        self.ttl = ttl
        self.tombstone_ttl = tombstone_ttl if tombstone_ttl is not None else ttl
        self._clock = clock or datetime.utcnow
        self._entries: Dict[str, PendingApproval] = {}
        self._tombstones: Dict[str, Tuple[ApprovalStatus, datetime]] = {}
        self._lock = Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def now(self) -> datetime:
        return self._clock()

    def _is_expired(self, entry: PendingApproval, now: datetime) -> bool:
        return now - entry.created_at >= self.ttl

    # =========================================================================
    # Store / lookup
    # =========================================================================

    def store(self, result: ReconciliationResult) -> str:
        """Store an escalated plan and return its approval id."""
        created_at = self.now()
        millis = int(created_at.timestamp() * 1000)
        approval_id = f"recon_{result.order_id}_{millis}_{uuid.uuid4().hex[:6]}"

        with self._lock:
            self._entries[approval_id] = PendingApproval(
                id=approval_id,
                result=result,
                created_at=created_at,
            )

        get_metrics().record_approval_stored()
        logger.info(
            f"Stored pending approval {approval_id}",
            extra_fields={"approval_id": approval_id, "order_id": result.order_id},
        )
        return approval_id

    def get(self, approval_id: str) -> Optional[PendingApproval]:
        """Return the entry while it is still pending, else None.

        Reads never remove expired entries; only sweep_expired does, so
        every expiry is reported to its caller.
        """
        now = self.now()
        with self._lock:
            entry = self._entries.get(approval_id)
        if entry is None or self._is_expired(entry, now):
            return None
        return entry

    def list_pending(self) -> List[PendingApproval]:
        """All pending entries that have not passed the TTL, oldest first."""
        now = self.now()
        with self._lock:
            live = [e for e in self._entries.values() if not self._is_expired(e, now)]
        return sorted(live, key=lambda e: e.created_at)

    def terminal_status(self, approval_id: str) -> Optional[ApprovalStatus]:
        """Status an entry ended in, if it was resolved or expired recently."""
        with self._lock:
            tombstone = self._tombstones.get(approval_id)
        return tombstone[0] if tombstone else None

    # =========================================================================
    # Transitions
    # =========================================================================

    def resolve(self, approval_id: str, status: ApprovalStatus) -> Optional[PendingApproval]:
        """Move a pending entry to a terminal status.

        The check and the transition happen under one lock, so two
        concurrent approvals of the same id cannot both succeed.

        Returns:
            The resolved entry, or None when the id is unknown, expired or
            already resolved.
        """
        if status == ApprovalStatus.PENDING:
            raise ValueError("Cannot resolve an approval to pending")

        now = self.now()
        with self._lock:
            entry = self._entries.get(approval_id)
            if entry is None or self._is_expired(entry, now):
                return None
            del self._entries[approval_id]
            entry.status = status
            self._tombstones[approval_id] = (status, now)

        get_metrics().record_approval_resolved(status.value)
        return entry

    def sweep_expired(self) -> List[PendingApproval]:
        """Expire entries older than the TTL and drop old tombstones."""
        now = self.now()
        expired: List[PendingApproval] = []

        with self._lock:
            for approval_id, entry in list(self._entries.items()):
                if self._is_expired(entry, now):
                    entry.status = ApprovalStatus.EXPIRED
                    del self._entries[approval_id]
                    self._tombstones[approval_id] = (ApprovalStatus.EXPIRED, now)
                    expired.append(entry)

            for approval_id, (_, resolved_at) in list(self._tombstones.items()):
                if now - resolved_at >= self.tombstone_ttl:
                    del self._tombstones[approval_id]

        for entry in expired:
            get_metrics().record_approval_resolved(ApprovalStatus.EXPIRED.value)
            logger.info(f"Pending approval {entry.id} expired", extra_fields={"approval_id": entry.id})

        return expired

    # =========================================================================
    # Background sweeper
    # =========================================================================

    def start_sweeper(self, interval: float = 300.0, on_expired: Optional[ExpiredCallback] = None) -> asyncio.Task:
        """Run sweep_expired every `interval` seconds on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        async def _loop():
            while True:
                await asyncio.sleep(interval)
                expired = self.sweep_expired()
                if expired and on_expired is not None:
                    try:
                        await on_expired(expired)
                    except Exception as e:
                        logger.error(f"Expired approval callback failed: {e}")

        self._sweeper = asyncio.get_running_loop().create_task(_loop())
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the background sweeper, if running."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def __len__(self) -> int:
        return len(self.list_pending())
