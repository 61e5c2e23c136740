"""Inventory Connectors - Pluggable inventory/order system integrations.

This package contains the abstract inventory interface and concrete
implementations. The reconciliation core is system-neutral; this package
handles:
- Authentication with the inventory system
- Reading purchase order snapshots
- Writing approved price, fee and tracking changes

To add a new inventory system:
1. Create a new folder (e.g., finale/)
2. Implement InventoryConnector interface
3. Register using @register_connector decorator
"""

from connectors.inventory_base import (
    # Core interface
    InventoryConnector,
    InventoryConfig,
    ConnectionStatus,
    FeeType,

    # Errors
    InventoryApiError,
    InventoryNotFoundError,
    InventoryRateLimitError,
    InventoryValidationError,

    # Factory functions
    create_connector,
    register_connector,
    list_available_connectors,
)

# Register built-in connectors
import connectors.memory  # noqa: F401

__all__ = [
    # Core interface
    "InventoryConnector",
    "InventoryConfig",
    "ConnectionStatus",
    "FeeType",

    # Errors
    "InventoryApiError",
    "InventoryNotFoundError",
    "InventoryRateLimitError",
    "InventoryValidationError",

    # Factory
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
