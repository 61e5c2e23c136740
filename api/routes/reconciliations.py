"""Reconciliation endpoints.

Submit an extracted invoice with its matched order id. The engine plans the
changes and then auto-applies, escalates or blocks them.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_engine
from core.models.canonical import InvoiceData
from reconciliation.engine import ReconciliationEngine
from reconciliation.models import ReconciliationOutcome, ReconciliationResult


router = APIRouter()


class ReconcileRequest(BaseModel):
    """Invoice plus the order it was matched to upstream."""
    invoice: InvoiceData
    order_id: str


@router.post("", response_model=ReconciliationOutcome)
async def process_invoice(
    request: ReconcileRequest,
    engine: ReconciliationEngine = Depends(get_engine),
) -> ReconciliationOutcome:
    """Reconcile and act on the verdict."""
    return await engine.process(request.invoice, request.order_id)


@router.post("/preview", response_model=ReconciliationResult)
async def preview(
    request: ReconcileRequest,
    engine: ReconciliationEngine = Depends(get_engine),
) -> ReconciliationResult:
    """Plan only. Nothing is written to the order or the activity log."""
    return await engine.reconcile(request.invoice, request.order_id)
