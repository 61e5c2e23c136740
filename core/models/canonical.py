"""Core canonical data models - invoice and purchase order snapshots.

These models represent the two inputs of a reconciliation in a standardized
format that is independent of the extraction pipeline and of the inventory
system the order lives in.

- InvoiceData: produced by the document-extraction collaborator
- OrderSummary / OrderDetails: fetched from the inventory connector

All models are frozen. Values coming from LLM extraction or from loosely
typed API payloads are coerced at this boundary so the reconciliation core
never handles partially-shaped data.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle various input formats from LLM extraction)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats (string with $ or commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a monetary value")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value}")
    return value


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%d/%m/%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


def _parse_str_list(value):
    """Accept a list of strings or a single comma/whitespace separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in value.replace(",", " ").split() if part]
    return [str(v) for v in value if v is not None]


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
OptionalDecimal = Annotated[Optional[Decimal], BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]
OptionalDate = Annotated[Optional[date], BeforeValidator(_parse_date)]
StrList = Annotated[List[str], BeforeValidator(_parse_str_list)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Invoice
# =============================================================================

class InvoiceLineItem(CanonicalBase):
    """A single billed line on a vendor invoice."""
    sku: Optional[str] = None
    description: str = ""
    qty: DecimalValue = Field(default=Decimal("1"), alias="quantity")
    unit_price: DecimalValue
    total: OptionalDecimal = None

    @property
    def line_total(self) -> Decimal:
        """Billed total for the line, falling back to qty x unit price."""
        if self.total is not None:
            return self.total
        return self.qty * self.unit_price


class InvoiceData(CanonicalBase):
    """Structured invoice record handed over by the extraction pipeline.

    Immutable once parsed. Charge fields that the vendor did not bill are
    left as None rather than zero so the fee reconciler can tell "absent"
    from "billed at zero".
    """
    invoice_number: str
    vendor_name: str
    po_number: Optional[str] = None
    invoice_date: OptionalDate = None

    line_items: List[InvoiceLineItem] = Field(default_factory=list)

    subtotal: OptionalDecimal = None
    freight: OptionalDecimal = None
    tax: OptionalDecimal = None
    tariff: OptionalDecimal = None
    labor: OptionalDecimal = None
    fuel_surcharge: OptionalDecimal = None
    total: DecimalValue = Decimal("0")
    amount_due: OptionalDecimal = None
    currency: str = "USD"

    tracking_numbers: StrList = Field(default_factory=list)
    ship_date: Optional[str] = None
    carrier_name: Optional[str] = None

    @property
    def line_skus(self) -> List[str]:
        """SKUs present on the invoice lines, in order."""
        return [line.sku for line in self.line_items if line.sku]


# =============================================================================
# Purchase Order (inventory system snapshot)
# =============================================================================

class OrderLineItem(CanonicalBase):
    """One product line on a purchase order."""
    product_id: str
    unit_price: DecimalValue = Decimal("0")
    quantity: DecimalValue = Decimal("0")
    description: str = ""


class OrderAdjustment(CanonicalBase):
    """A non-line-item charge already on the order (freight, tax, ...)."""
    description: str
    amount: DecimalValue = Decimal("0")


class OrderSummary(CanonicalBase):
    """Read-only snapshot of a purchase order.

    Fetched once per reconciliation call and never cached across calls,
    since order prices may change between invoices.
    """
    order_id: str
    supplier: str = ""
    items: List[OrderLineItem] = Field(default_factory=list)
    adjustments: List[OrderAdjustment] = Field(default_factory=list)

    @property
    def product_ids(self) -> List[str]:
        return [item.product_id for item in self.items]


class OrderDetails(CanonicalBase):
    """Order detail needed for shipment writes."""
    order_id: str
    shipment_refs: List[str] = Field(default_factory=list)
