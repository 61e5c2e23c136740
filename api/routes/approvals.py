"""Pending approval endpoints.

The chat bot lists escalated reconciliations and relays the approver's
decision. A decision on an unknown, expired or already-resolved id returns
409 with the explicit failure message.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import get_engine
from reconciliation.engine import ReconciliationEngine
from reconciliation.models import ApprovalOutcome, PendingApproval
from reconciliation.report import format_approval_outcome


router = APIRouter()


class DecisionRequest(BaseModel):
    """Who made the decision."""
    actor: Optional[str] = None


class DecisionResponse(ApprovalOutcome):
    """Approval outcome plus the reply text for the chat thread."""
    reply: str


def _respond(outcome: ApprovalOutcome):
    body = DecisionResponse(**outcome.model_dump(), reply=format_approval_outcome(outcome))
    if not outcome.success:
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))
    return body


@router.get("", response_model=List[PendingApproval])
async def list_approvals(engine: ReconciliationEngine = Depends(get_engine)) -> List[PendingApproval]:
    """List pending approvals, oldest first."""
    return engine.approvals.list_pending()


@router.get("/{approval_id}", response_model=PendingApproval)
async def get_approval(approval_id: str, engine: ReconciliationEngine = Depends(get_engine)) -> PendingApproval:
    """Get one pending approval."""
    entry = engine.approvals.get(approval_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Approval {approval_id} not found or expired")
    return entry


@router.post("/{approval_id}/approve", response_model=DecisionResponse)
async def approve(
    approval_id: str,
    request: Optional[DecisionRequest] = None,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Approve every escalated change of a pending reconciliation and apply it."""
    actor = (request.actor if request else None) or "approver"
    return _respond(await engine.approve_pending(approval_id, actor=actor))


@router.post("/{approval_id}/reject", response_model=DecisionResponse)
async def reject(
    approval_id: str,
    request: Optional[DecisionRequest] = None,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Reject a pending reconciliation. Nothing is applied."""
    actor = (request.actor if request else None) or "approver"
    return _respond(await engine.reject_pending(approval_id, actor=actor))
