"""FastAPI server for the reconciliation engine.

Main entry point for the API server. The messaging layer (chat bot) calls
these endpoints to list pending approvals and relay approve/reject decisions.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import build_engine
from api.routes import approvals, health, reconciliations
from core.config import Settings
from core.observability.logging import configure_logging, get_logger
from reconciliation.engine import ReconciliationEngine


logger = get_logger(__name__)


def create_app(
    engine: Optional[ReconciliationEngine] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        configure_logging(
            level=getattr(logging, settings.log_level, logging.INFO),
            json_format=settings.json_logs,
        )
        logger.info("Reconciliation API starting up...")
        app.state.engine.start(settings.approval_sweep_seconds)

        yield

        await app.state.engine.stop()
        logger.info("Reconciliation API shutting down...")

    app = FastAPI(
        title="Invoice Reconciliation API",
        description="Invoice-to-purchase-order reconciliation with human approval of risky changes",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.engine = engine or build_engine(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(reconciliations.router, prefix="/reconciliations", tags=["Reconciliations"])
    app.include_router(approvals.router, prefix="/approvals", tags=["Approvals"])

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
