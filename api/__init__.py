"""API Package.

FastAPI server for the reconciliation engine.
"""

from api.server import create_app

__all__ = [
    "create_app",
]
