"""
Orchestration Trigger

Starts the durable state machine for one connection. Each start gets a
unique workflow id; concurrent orchestrations of the same connection are
harmless because only one of them can hold the run token.
"""
import logging
import uuid
from datetime import timedelta
from typing import Optional

from temporalio.client import Client

from syncline.core.config import Settings, get_settings
from syncline.core.errors import NotFoundError
from syncline.stores.base import ConnectionStore
from syncline.workflows.connection_workflow import ConnectionSyncWorkflow
from syncline.workflows.types import OrchestrationInput

logger = logging.getLogger(__name__)


async def start_connection(
    client: Client,
    connection_id: str,
    connections: Optional[ConnectionStore] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Start orchestrating ``connection_id``.

    When a connection store is given, the connection must exist and the new
    execution id is recorded on it.

    Returns:
        The workflow id of the started execution

    Raises:
        NotFoundError: If the connection does not exist
    """
    settings = settings or get_settings()

    if connections is not None and await connections.get(connection_id) is None:
        raise NotFoundError("SYNC-2001", connection_id=connection_id)

    params = OrchestrationInput(
        connection_id=connection_id,
        job_timeout_seconds=settings.job_timeout_minutes * 60,
    )
    handle = await client.start_workflow(
        ConnectionSyncWorkflow.run,
        params,
        id=f"connection-{connection_id}-{uuid.uuid4()}",
        task_queue=settings.temporal_task_queue,
        run_timeout=timedelta(hours=settings.orchestration_timeout_hours),
    )
    logger.info(f"Started orchestration {handle.id} for connection {connection_id}")

    if connections is not None:
        await connections.set_execution(connection_id, handle.result_run_id or handle.id)

    return handle.id


async def abort_connection(connections: ConnectionStore, connection_id: str) -> bool:
    """
    Free a connection's run token without stamping a run.

    A job still in flight is not interrupted; it finishes or fails on its
    own, and the next reservation can proceed.

    Returns:
        True if a run token was held and is now cleared

    Raises:
        NotFoundError: If the connection does not exist
    """
    if await connections.get(connection_id) is None:
        raise NotFoundError("SYNC-2001", connection_id=connection_id)

    released = await connections.abort(connection_id)
    if released:
        logger.warning(f"Aborted run of connection {connection_id}")
    return released
