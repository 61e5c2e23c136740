"""In-memory Connector Package.

Implements the InventoryConnector interface over process memory.
"""

from connectors.memory.memory_connector import (
    InMemoryInventoryConnector,
    RecordedWrite,
    order_from_dict,
)

__all__ = [
    "InMemoryInventoryConnector",
    "RecordedWrite",
    "order_from_dict",
]
