"""Health check and metrics endpoints."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_engine
from core.observability.metrics import get_metrics
from reconciliation.engine import ReconciliationEngine


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: ReconciliationEngine = Depends(get_engine)) -> HealthResponse:
    """Health check endpoint."""
    inventory_up = await engine.connector.test_connection()
    return HealthResponse(
        status="healthy" if inventory_up else "degraded",
        timestamp=datetime.utcnow().isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "inventory": "up" if inventory_up else "down",
            "pending_approvals": str(len(engine.approvals)),
        }
    )


@router.get("/metrics")
async def metrics() -> Dict[str, Any]:
    """In-process reconciliation metrics."""
    return get_metrics().get_summary()


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
