"""In-memory inventory connector.

Holds purchase orders in process memory. Used for local runs, the API's
default wiring and tests. Writes mutate the stored orders so a second
reconciliation sees the updated prices, and every write is also appended to
`writes` for inspection.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from connectors.inventory_base import (
    ConnectionStatus,
    FeeType,
    InventoryConfig,
    InventoryConnector,
    InventoryNotFoundError,
    InventoryValidationError,
    register_connector,
)
from core.models.canonical import (
    OrderAdjustment,
    OrderDetails,
    OrderLineItem,
    OrderSummary,
)


@dataclass
class RecordedWrite:
    """One write call received by the connector."""
    operation: str
    target: str
    payload: Dict[str, Any] = field(default_factory=dict)


@register_connector("memory")
class InMemoryInventoryConnector(InventoryConnector):
    """Inventory connector backed by dictionaries.

    Failure injection:
        connector.fail_on("update_order_item_price", InventoryValidationError("locked"))
    makes every subsequent call of that method raise the given exception.
    """

    def __init__(self, config: Optional[InventoryConfig] = None):
        super().__init__(config or InventoryConfig(connector_type="memory"))
        self._orders: Dict[str, OrderSummary] = {}
        self._shipments: Dict[str, List[str]] = {}
        self._shipment_fields: Dict[str, Dict[str, Any]] = {}
        self._failures: Dict[str, Exception] = {}
        self.writes: List[RecordedWrite] = []

    # =========================================================================
    # Seeding and test hooks
    # =========================================================================

    def add_order(self, order: OrderSummary, shipment_refs: Optional[List[str]] = None) -> None:
        """Store an order snapshot (and optional shipment references)."""
        self._orders[order.order_id] = order
        self._shipments[order.order_id] = list(shipment_refs or [])

    def fail_on(self, operation: str, error: Exception) -> None:
        """Make the named connector method raise `error`."""
        self._failures[operation] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def shipment_fields(self, shipment_ref: str) -> Dict[str, Any]:
        """Tracking fields written to a shipment so far."""
        return dict(self._shipment_fields.get(shipment_ref, {}))

    def _maybe_fail(self, operation: str) -> None:
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def _require_order(self, order_id: str) -> OrderSummary:
        order = self._orders.get(order_id)
        if order is None:
            raise InventoryNotFoundError(f"Order {order_id} not found")
        return order

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        self._maybe_fail("connect")
        self._connection_status = ConnectionStatus.CONNECTED
        return True

    async def disconnect(self) -> None:
        self._connection_status = ConnectionStatus.DISCONNECTED

    async def test_connection(self) -> bool:
        try:
            self._maybe_fail("test_connection")
        except Exception:
            self._connection_status = ConnectionStatus.FAILED
            return False
        return True

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_order_summary(self, order_id: str) -> Optional[OrderSummary]:
        self._maybe_fail("get_order_summary")
        return self._orders.get(order_id)

    async def get_order_details(self, order_id: str) -> OrderDetails:
        self._maybe_fail("get_order_details")
        self._require_order(order_id)
        return OrderDetails(order_id=order_id, shipment_refs=self._shipments.get(order_id, []))

    # =========================================================================
    # Writes
    # =========================================================================

    async def update_order_item_price(self, order_id: str, product_id: str, price: Decimal) -> None:
        self._maybe_fail("update_order_item_price")
        order = self._require_order(order_id)

        if not any(item.product_id == product_id for item in order.items):
            raise InventoryValidationError(f"Product {product_id} is not on order {order_id}")

        items = [
            item.model_copy(update={"unit_price": price}) if item.product_id == product_id else item
            for item in order.items
        ]
        self._orders[order_id] = order.model_copy(update={"items": items})
        self.writes.append(RecordedWrite("update_order_item_price", order_id, {
            "product_id": product_id,
            "price": price,
        }))

    async def add_order_adjustment(
        self,
        order_id: str,
        fee_type: FeeType,
        amount: Decimal,
        description: str,
    ) -> None:
        self._maybe_fail("add_order_adjustment")
        order = self._require_order(order_id)

        adjustments = list(order.adjustments) + [OrderAdjustment(description=description, amount=amount)]
        self._orders[order_id] = order.model_copy(update={"adjustments": adjustments})
        self.writes.append(RecordedWrite("add_order_adjustment", order_id, {
            "fee_type": FeeType(fee_type).value,
            "amount": amount,
            "description": description,
        }))

    async def update_shipment_tracking(self, shipment_ref: str, fields: Dict[str, Any]) -> None:
        self._maybe_fail("update_shipment_tracking")
        if not any(shipment_ref in refs for refs in self._shipments.values()):
            raise InventoryNotFoundError(f"Shipment {shipment_ref} not found")

        self._shipment_fields.setdefault(shipment_ref, {}).update(fields)
        self.writes.append(RecordedWrite("update_shipment_tracking", shipment_ref, dict(fields)))


def order_from_dict(data: Dict[str, Any]) -> OrderSummary:
    """Build an OrderSummary from a loosely typed payload (fixtures, API seeds)."""
    return OrderSummary(
        order_id=data["order_id"],
        supplier=data.get("supplier", ""),
        items=[OrderLineItem(**item) for item in data.get("items", [])],
        adjustments=[OrderAdjustment(**adj) for adj in data.get("adjustments", [])],
    )
