"""Core data models - invoice, purchase order and audit types.

This package contains the boundary models the reconciliation core works
with. They are independent of the extraction pipeline and of any specific
inventory system.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    DateValue,

    # Invoice
    InvoiceData,
    InvoiceLineItem,

    # Purchase order
    OrderSummary,
    OrderLineItem,
    OrderAdjustment,
    OrderDetails,
)

from core.models.refs import (
    AuditEvent,
    AuditSeverity,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "DateValue",

    # Invoice
    "InvoiceData",
    "InvoiceLineItem",

    # Purchase order
    "OrderSummary",
    "OrderLineItem",
    "OrderAdjustment",
    "OrderDetails",

    # Audit
    "AuditEvent",
    "AuditSeverity",
]
