"""Engine wiring for the API process."""

from pathlib import Path
from typing import Optional

from fastapi import Request

from connectors import InventoryConfig, create_connector
from core.audit import AuditLogger, InMemoryAuditBackend, JSONFileAuditBackend
from core.config import Settings
from reconciliation.approvals import PendingApprovalRegistry
from reconciliation.engine import ReconciliationEngine
from reconciliation.tracking import AuditTrackingStore


def build_engine(settings: Optional[Settings] = None) -> ReconciliationEngine:
    """Create an engine from settings.

    With an audit directory configured the activity log is persisted as
    daily JSON files; otherwise it lives in memory.
    """
    settings = settings or Settings.from_env()

    audit = AuditLogger()
    if settings.audit_dir is not None:
        audit.add_backend(JSONFileAuditBackend(Path(settings.audit_dir)))
    else:
        audit.add_backend(InMemoryAuditBackend())

    connector = create_connector(InventoryConfig(connector_type=settings.connector_type))

    return ReconciliationEngine(
        connector=connector,
        audit=audit,
        tracking_store=AuditTrackingStore(audit),
        approvals=PendingApprovalRegistry(ttl=settings.thresholds.approval_ttl),
        thresholds=settings.thresholds,
    )


def get_engine(request: Request) -> ReconciliationEngine:
    """FastAPI dependency returning the app's engine."""
    return request.app.state.engine
