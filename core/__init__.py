"""Core module - inventory-neutral models, configuration, audit and observability.

This module contains the canonical invoice and order models, the activity
log, thresholds and settings. It is intentionally inventory-system-agnostic.

Inventory-specific logic belongs in /connectors/.
"""

__version__ = "1.0.0"
