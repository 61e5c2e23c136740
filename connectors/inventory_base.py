"""Abstract Inventory Connector Interface.

This module defines the abstract interface that every inventory/order system
connector must implement. It is intentionally system-agnostic.

Connectors implement this interface to:
1. Connect and authenticate with the inventory system
2. Read purchase order snapshots (summary for reconciliation, details for shipments)
3. Write approved changes back (unit prices, fee adjustments, shipment tracking)

Key Design Principles:
- Reads return NORMALIZED objects (OrderSummary, OrderDetails) from core.models
- The reconciliation engine and the API depend ONLY on this interface
- Errors are raised as InventoryApiError subclasses; the engine converts them
  to values at its boundaries
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from core.models.canonical import OrderDetails, OrderSummary


# =============================================================================
# Enums
# =============================================================================

class FeeType(str, Enum):
    """Order-level adjustment categories understood by inventory systems."""
    FREIGHT = "FREIGHT"
    TAX = "TAX"
    TARIFF = "TARIFF"
    LABOR = "LABOR"
    SHIPPING = "SHIPPING"


class ConnectionStatus(str, Enum):
    """Connection status to the inventory system."""
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    FAILED = "FAILED"
    RATE_LIMITED = "RATE_LIMITED"


# =============================================================================
# Errors
# =============================================================================

class InventoryApiError(Exception):
    """Base exception for inventory system errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class InventoryNotFoundError(InventoryApiError):
    """Resource not found (404)."""
    def __init__(self, message: str):
        super().__init__(message, 404)


class InventoryRateLimitError(InventoryApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


class InventoryValidationError(InventoryApiError):
    """Write rejected by the inventory system (400)."""
    def __init__(self, message: str, response_body: str = ""):
        super().__init__(message, 400, response_body)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class InventoryConfig:
    """Configuration for an inventory connector.

    Generic configuration that can be extended by specific connectors.
    """
    connector_type: str                     # "memory", "finale", ...
    environment: str = "production"         # "production", "sandbox"
    base_url: Optional[str] = None          # API endpoint
    account_id: Optional[str] = None        # Account / company within the system

    # Authentication (connector-specific)
    auth_config: Dict[str, Any] = field(default_factory=dict)

    # Connector-specific settings
    custom_settings: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Abstract Connector Interface
# =============================================================================

class InventoryConnector(ABC):
    """Abstract base class for inventory connectors.

    Reads are called once per reconciliation and never cached by the engine.
    Writes are called by the apply step, one per approved change; each may
    raise independently.

    Implementations:
    - connectors/memory/memory_connector.py
    """

    def __init__(self, config: InventoryConfig):
        """Initialize connector with configuration."""
        self.config = config
        self._connection_status = ConnectionStatus.DISCONNECTED

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the inventory system.

        Returns:
            True if connection successful
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the inventory system."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the connection is valid and authenticated."""
        pass

    @property
    def connection_status(self) -> ConnectionStatus:
        """Get current connection status."""
        return self._connection_status

    # =========================================================================
    # Reads
    # =========================================================================

    @abstractmethod
    async def get_order_summary(self, order_id: str) -> Optional[OrderSummary]:
        """Fetch the priced snapshot of a purchase order.

        Args:
            order_id: Purchase order identifier

        Returns:
            OrderSummary, or None when the order does not exist
        """
        pass

    @abstractmethod
    async def get_order_details(self, order_id: str) -> OrderDetails:
        """Fetch order details needed for shipment writes.

        Raises:
            InventoryNotFoundError: If the order does not exist
        """
        pass

    # =========================================================================
    # Writes
    # =========================================================================

    @abstractmethod
    async def update_order_item_price(
        self,
        order_id: str,
        product_id: str,
        price: Decimal,
    ) -> None:
        """Set the unit price of one product line on an order."""
        pass

    @abstractmethod
    async def add_order_adjustment(
        self,
        order_id: str,
        fee_type: FeeType,
        amount: Decimal,
        description: str,
    ) -> None:
        """Add an order-level fee adjustment."""
        pass

    @abstractmethod
    async def update_shipment_tracking(
        self,
        shipment_ref: str,
        fields: Dict[str, Any],
    ) -> None:
        """Update a shipment with tracking fields.

        Recognized fields: tracking_code, ship_date, private_notes.
        """
        pass


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: InventoryConfig) -> InventoryConnector:
    """Create a connector instance from configuration.

    Args:
        config: InventoryConfig with connector_type specified

    Returns:
        Configured connector instance

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())
