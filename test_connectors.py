"""Connector registry and in-memory connector tests."""

import asyncio
from decimal import Decimal

import pytest

from conftest import ORDER_ID
from connectors import (
    ConnectionStatus,
    FeeType,
    InventoryConfig,
    InventoryNotFoundError,
    InventoryRateLimitError,
    InventoryValidationError,
    create_connector,
    list_available_connectors,
)
from connectors.memory import InMemoryInventoryConnector


class TestRegistry:

    def test_memory_connector_is_registered(self):
        assert "memory" in list_available_connectors()
        connector = create_connector(InventoryConfig(connector_type="Memory"))
        assert isinstance(connector, InMemoryInventoryConnector)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown connector type: finale"):
            create_connector(InventoryConfig(connector_type="finale"))

    def test_error_status_codes(self):
        assert InventoryNotFoundError("x").status_code == 404
        assert InventoryValidationError("x").status_code == 400
        limited = InventoryRateLimitError("slow down", retry_after=5)
        assert limited.status_code == 429
        assert limited.retry_after == 5


class TestInMemoryConnector:

    def test_connect_and_disconnect(self, connector):
        asyncio.run(connector.connect())
        assert connector.connection_status == ConnectionStatus.CONNECTED
        asyncio.run(connector.disconnect())
        assert connector.connection_status == ConnectionStatus.DISCONNECTED

    def test_unknown_order_summary_is_none(self, connector):
        assert asyncio.run(connector.get_order_summary("PO-0000")) is None

    def test_unknown_order_details_raises(self, connector):
        with pytest.raises(InventoryNotFoundError):
            asyncio.run(connector.get_order_details("PO-0000"))

    def test_price_write_for_product_not_on_order(self, connector):
        with pytest.raises(InventoryValidationError):
            asyncio.run(connector.update_order_item_price(ORDER_ID, "SKU-999", Decimal("1.00")))
        assert connector.writes == []

    def test_adjustment_is_appended(self, connector):
        asyncio.run(connector.add_order_adjustment(ORDER_ID, FeeType.TAX, Decimal("12.00"), "Tax"))
        order = asyncio.run(connector.get_order_summary(ORDER_ID))
        assert [a.description for a in order.adjustments] == ["Freight", "Tax"]

    def test_unknown_shipment(self, connector):
        with pytest.raises(InventoryNotFoundError):
            asyncio.run(connector.update_shipment_tracking("SHIP-404", {"tracking_code": "1Z"}))

    def test_injected_failure_can_be_cleared(self, connector):
        connector.fail_on("get_order_summary", RuntimeError("down"))
        with pytest.raises(RuntimeError):
            asyncio.run(connector.get_order_summary(ORDER_ID))

        connector.clear_failures()
        assert asyncio.run(connector.get_order_summary(ORDER_ID)).order_id == ORDER_ID
