"""Worker for the reconciliation pipeline.

Listens on the reconciliation task queue and executes the reconciliation
activities against one engine instance. The engine's pending approvals live
in this process, so approve/reject activities must be routed to the same
worker that escalated them.

Run with --queue <name> to override the task queue.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.reconcile import ReconciliationActivities
from api.dependencies import build_engine
from core.config import Settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client


logger = get_logger(__name__)

TASK_QUEUE_DEFAULT = "recon-default"


async def run_worker(queue: str = None):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll (default from settings, recon-default)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = Settings.from_env()
    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=settings.json_logs,
    )

    task_queue = queue or settings.task_queue or TASK_QUEUE_DEFAULT
    engine = build_engine(settings)
    activities = ReconciliationActivities(engine)

    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        await engine.connector.connect()
        engine.start(settings.approval_sweep_seconds)

        worker = Worker(
            client,
            task_queue=task_queue,
            activities=activities.all(),
        )
        logger.info(f"Worker created for queue '{task_queue}' ({len(activities.all())} activities)")
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        await engine.stop()
        await engine.connector.disconnect()


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Invoice Reconciliation Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help=f"Task queue to poll (default: {TASK_QUEUE_DEFAULT})"
    )

    args = parser.parse_args()
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
