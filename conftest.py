"""Shared fixtures: a seeded in-memory order and a wired engine."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from connectors.memory import InMemoryInventoryConnector
from core.audit import AuditLogger, InMemoryAuditBackend
from core.models.canonical import (
    InvoiceData,
    InvoiceLineItem,
    OrderAdjustment,
    OrderLineItem,
    OrderSummary,
)
from reconciliation.approvals import PendingApprovalRegistry
from reconciliation.engine import ReconciliationEngine
from reconciliation.tracking import InMemoryTrackingStore


ORDER_ID = "PO-2231"


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def build_order(**overrides) -> OrderSummary:
    data = dict(
        order_id=ORDER_ID,
        supplier="BuildASoil Organics LLC",
        items=[
            OrderLineItem(product_id="SKU-100", unit_price=Decimal("2.60"), quantity=Decimal("100"),
                          description="Worm castings 1 cu ft bag"),
            OrderLineItem(product_id="SKU-200", unit_price=Decimal("15.00"), quantity=Decimal("10"),
                          description="Kelp meal 50 lb"),
        ],
        adjustments=[OrderAdjustment(description="Freight", amount=Decimal("280"))],
    )
    data.update(overrides)
    return OrderSummary(**data)


def build_invoice(price="2.60", qty="100", sku="SKU-100", **overrides) -> InvoiceData:
    data = dict(
        invoice_number="INV-1001",
        vendor_name="BuildASoil Organics",
        line_items=[
            InvoiceLineItem(sku=sku, description="Worm castings 1 cu ft bag", qty=qty, unit_price=price),
        ],
        total=Decimal(price) * Decimal(qty),
    )
    data.update(overrides)
    return InvoiceData(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connector():
    conn = InMemoryInventoryConnector()
    conn.add_order(build_order(), shipment_refs=["SHIP-1"])
    return conn


@pytest.fixture
def audit_backend():
    return InMemoryAuditBackend()


@pytest.fixture
def audit(audit_backend):
    return AuditLogger([audit_backend])


@pytest.fixture
def tracking_store():
    return InMemoryTrackingStore()


@pytest.fixture
def engine(connector, audit, tracking_store, clock):
    return ReconciliationEngine(
        connector=connector,
        audit=audit,
        tracking_store=tracking_store,
        approvals=PendingApprovalRegistry(ttl=timedelta(hours=24), clock=clock),
    )
