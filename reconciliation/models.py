"""Reconciliation plan and outcome models.

A ReconciliationResult is the engine's only output artifact: a frozen plan of
proposed price, fee and tracking changes, each carrying its own safety
verdict, plus one aggregate verdict. Nothing touches the inventory system
until the plan is passed to the apply step.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from connectors.inventory_base import FeeType


# =============================================================================
# Enums
# =============================================================================

class Verdict(str, Enum):
    """Safety verdict for a single change or for a whole reconciliation."""
    AUTO_APPROVE = "auto_approve"        # within thresholds, safe to apply
    NEEDS_APPROVAL = "needs_approval"    # human must confirm first
    REJECTED = "rejected"                # magnitude error, never applied
    DUPLICATE = "duplicate"              # invoice+order already reconciled
    NO_CHANGE = "no_change"              # prices match, nothing to do
    NO_MATCH = "no_match"                # line (or order) could not be matched


class VendorConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ApprovalStatus(str, Enum):
    """Lifecycle of a pending approval. Every state but PENDING is terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class PlanModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Proposed Changes
# =============================================================================

class PriceChange(PlanModel):
    """Proposed unit price change for one invoice line."""
    product_id: str
    description: str = ""
    po_price: Decimal
    invoice_price: Decimal
    quantity: Decimal
    percent_change: Decimal = Field(..., description="Absolute change as a percentage of the PO price")
    dollar_impact: Decimal = Field(..., description="(invoice_price - po_price) x quantity, signed")
    verdict: Verdict
    reason: str = ""


class FeeChange(PlanModel):
    """Proposed order-level fee adjustment."""
    fee_type: FeeType
    amount: Decimal
    description: str
    existing_amount: Decimal = Decimal("0")
    is_new: bool = True
    verdict: Verdict
    reason: str = ""

    @property
    def delta(self) -> Decimal:
        return abs(self.amount - self.existing_amount)


class TrackingUpdate(PlanModel):
    """Carrier tracking data found on the invoice."""
    tracking_numbers: List[str] = Field(default_factory=list)
    ship_date: Optional[str] = None
    carrier_name: Optional[str] = None


class VendorCorrelation(PlanModel):
    """Outcome of checking that an invoice belongs to an order's supplier."""
    passed: bool
    confidence: VendorConfidence
    note: str


class DuplicateCheck(PlanModel):
    """Prior reconciliation of the same invoice+order pair, if any."""
    is_duplicate: bool
    processed_at: Optional[datetime] = None
    action_taken: Optional[str] = None


# =============================================================================
# Reconciliation Result
# =============================================================================

class ReconciliationResult(PlanModel):
    """Complete reconciliation plan for one invoice against one order."""
    order_id: str
    invoice_number: str
    vendor_name: str
    invoice_total: Decimal = Decimal("0")

    price_changes: List[PriceChange] = Field(default_factory=list)
    fee_changes: List[FeeChange] = Field(default_factory=list)
    tracking_update: Optional[TrackingUpdate] = None

    overall_verdict: Verdict
    total_dollar_impact: Decimal = Decimal("0")
    auto_applicable: bool = False

    warnings: List[str] = Field(default_factory=list)
    vendor_note: Optional[str] = None
    summary: str = ""

    @property
    def pending_price_items(self) -> List[str]:
        """Product ids whose change waits on a human."""
        return [pc.product_id for pc in self.price_changes if pc.verdict == Verdict.NEEDS_APPROVAL]

    @property
    def pending_fee_types(self) -> List[FeeType]:
        """Fee types whose change waits on a human."""
        return [fc.fee_type for fc in self.fee_changes if fc.verdict == Verdict.NEEDS_APPROVAL]


# =============================================================================
# Apply / Approval Outcomes
# =============================================================================

class ApplyResult(PlanModel):
    """What the apply step did, item by item. Each entry is a readable line."""
    applied: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


class PendingApproval(BaseModel):
    """A reconciliation plan waiting for a human decision."""
    id: str
    result: ReconciliationResult
    created_at: datetime
    status: ApprovalStatus = ApprovalStatus.PENDING


class ApprovalOutcome(PlanModel):
    """Result of approving or rejecting a pending reconciliation.

    Unknown, expired and already-resolved ids come back as success=False with
    an explanatory message; they never raise.
    """
    success: bool
    applied: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    message: str


class ReconciliationOutcome(PlanModel):
    """End-to-end result of processing one invoice against one order."""
    result: ReconciliationResult
    apply_result: Optional[ApplyResult] = None
    approval_id: Optional[str] = None
