"""
Syncline Temporal Worker

Main entrypoint for the Temporal worker process.
Registers the connection workflow and its activities and listens on the
configured task queue.
"""
import asyncio
import logging
import signal
from typing import Optional

from temporalio.client import Client
from temporalio.worker import Worker

from syncline.activities.sync_activities import SyncActivities
from syncline.core.config import get_settings
from syncline.core.errors import StoreUnavailableError
from syncline.core.interceptors import MetricsInterceptor
from syncline.core.monitoring import MetricsRegistry
from syncline.core.structured_logging import configure_logging
from syncline.core.temporal_client import get_temporal_client
from syncline.ingestion.registry import ConnectorRegistry, load_connector_modules
from syncline.stores import Stores, make_sql_stores
from syncline.workflows.connection_workflow import ConnectionSyncWorkflow

logger = logging.getLogger("syncline.worker")


def build_worker(client: Client, sync: SyncActivities, task_queue: str) -> Worker:
    """Create a worker with the connection workflow and its activities."""
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[ConnectionSyncWorkflow],
        activities=[
            sync.before_sync,
            sync.run_job,
            sync.after_sync,
            sync.after_sleep,
            sync.record_execution,
        ],
        interceptors=[MetricsInterceptor()],
    )


async def run_worker(
    registry: Optional[ConnectorRegistry] = None,
    stores: Optional[Stores] = None,
) -> None:
    """Run the Temporal worker until SIGINT/SIGTERM."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # 0. Start Metrics Server
    if settings.metrics_enabled:
        MetricsRegistry().start_server(port=settings.metrics_port)

    # 1. Connect to Temporal
    try:
        client = await get_temporal_client()
    except StoreUnavailableError as e:
        logger.critical(f"Failed to start worker: {e.message}")
        raise

    # 2. Connectors and stores
    registry = load_connector_modules(registry or ConnectorRegistry(), settings.connector_modules)
    logger.info(f"Registered connectors: {registry.describe()}")
    stores = stores or make_sql_stores()

    task_queue = settings.temporal_task_queue
    logger.info(f"Starting worker on queue: {task_queue}")

    # 3. Create Worker
    worker = build_worker(client, SyncActivities(stores, registry, settings), task_queue)

    # 4. Handle Shutdown Signals
    stop_event = asyncio.Event()

    def handle_signal():
        logger.info("Shutdown signal received...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    # 5. Run Worker
    async with worker:
        await stop_event.wait()
    logger.info("Worker shutdown complete.")


if __name__ == "__main__":
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        pass
