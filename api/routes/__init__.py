"""API Routes Package."""

from api.routes import health, approvals, reconciliations

__all__ = [
    "health",
    "approvals",
    "reconciliations",
]
