"""
End-to-end test of the connection orchestration.

Runs the ConnectionSyncWorkflow in a time-skipping Temporal test server with
real activities over in-memory stores and a mocked HTTP API: one run, a
durable sleep until the next fire time, a continue-as-new, and a clean
termination when the second reservation is denied.
"""
import logging
import uuid
from typing import Optional

import pytest
import pytest_asyncio
from temporalio import activity
from temporalio.client import WorkflowFailureError
from temporalio.exceptions import ApplicationError
from temporalio.testing import WorkflowEnvironment
from temporalio.worker import Worker

from syncline.activities.sync_activities import SyncActivities
from syncline.core.config import Settings
from syncline.core.errors import NotFoundError
from syncline.core.orchestrator import start_connection
from syncline.ingestion.registry import ConnectorRegistry
from syncline.stores import make_memory_stores
from syncline.stores.memory import InMemoryConnectionStore
from syncline.worker.worker_main import build_worker
from syncline.workflows.connection_workflow import ConnectionSyncWorkflow
from syncline.workflows.types import Action, OrchestrationInput, TransitionInput

from fake_connectors import FakeSource, PagedApi, PagedStream, RecordingDestination

logger = logging.getLogger(__name__)

pytestmark = pytest.mark.integration


class SingleRunConnectionStore(InMemoryConnectionStore):
    """Grants the first reservation only, so the orchestration ends after one loop."""

    def __init__(self):
        super().__init__()
        self.reservations = 0

    async def reserve(self, connection_id: str) -> Optional[str]:
        if self.reservations:
            return None
        token = await super().reserve(connection_id)
        if token:
            self.reservations += 1
        return token


@pytest_asyncio.fixture
async def temporal_env():
    logger.info("Starting ephemeral time-skipping TestEnvironment")
    async with await WorkflowEnvironment.start_time_skipping() as env:
        yield env


@pytest.fixture
def destinations():
    return []


@pytest.fixture
def e2e_registry(destinations):
    def make_destination(options):
        destination = RecordingDestination(options)
        destinations.append(destination)
        return destination

    registry = ConnectorRegistry()
    registry.sources.register("fake", lambda options: FakeSource([PagedStream("items")]))
    registry.destinations.register("recording", make_destination)
    return registry


@pytest.mark.asyncio
async def test_run_sleep_loop_terminate(temporal_env, e2e_registry, destinations):
    stores = make_memory_stores()
    stores.connections = SingleRunConnectionStore()
    source = await stores.sources.create("fake", {"token": "abc"})
    destination = await stores.destinations.create("recording")
    connection = await stores.connections.create(source.id, destination.id, "*/5 * * * *")

    api = PagedApi({"/items": [[{"id": 1}], [{"id": 2}]]})
    task_queue = f"test-queue-{uuid.uuid4()}"
    settings = Settings(temporal_task_queue=task_queue)
    activities = SyncActivities(stores, e2e_registry, settings=settings, http_client=api.client())

    async with build_worker(temporal_env.client, activities, task_queue):
        workflow_id = await start_connection(
            temporal_env.client, connection.id, stores.connections, settings=settings
        )
        handle = temporal_env.client.get_workflow_handle(workflow_id)
        summary = await handle.result()
        final_run_id = (await handle.describe()).run_id

    assert summary == {"connection_id": connection.id, "restart_count": 1, "runs": 0}

    # Exactly one job ran and delivered both pages
    assert len(destinations) == 1
    assert destinations[0].records == [{"id": 1}, {"id": 2}]
    assert destinations[0].opened and destinations[0].closed

    stored = await stores.connections.get(connection.id)
    assert stored.run_token is None
    assert stored.last_ran_at is not None
    assert stored.execution_id == final_run_id


@pytest.mark.asyncio
async def test_failed_job_fails_execution_and_keeps_token(temporal_env, e2e_registry):
    stores = make_memory_stores()
    source = await stores.sources.create("fake")
    destination = await stores.destinations.create("recording")
    connection = await stores.connections.create(source.id, destination.id, "*/5 * * * *")

    api = PagedApi({"/items": [[1]]}, failures={"/items": [500] * 4})
    task_queue = f"test-queue-{uuid.uuid4()}"
    settings = Settings(temporal_task_queue=task_queue)
    activities = SyncActivities(stores, e2e_registry, settings=settings, http_client=api.client())

    async with build_worker(temporal_env.client, activities, task_queue):
        workflow_id = await start_connection(
            temporal_env.client, connection.id, stores.connections, settings=settings
        )
        with pytest.raises(WorkflowFailureError):
            await temporal_env.client.get_workflow_handle(workflow_id).result()

    # The job is never retried by Temporal
    assert len(api.requests) == 4
    stored = await stores.connections.get(connection.id)
    assert stored.run_token is not None
    assert stored.last_ran_at is None

    # Operator abort frees the connection
    assert await stores.connections.abort(connection.id)
    assert await stores.connections.reserve(connection.id)


@pytest.mark.asyncio
async def test_start_unknown_connection(temporal_env):
    with pytest.raises(NotFoundError):
        await start_connection(temporal_env.client, "missing", make_memory_stores().connections)



@activity.defn(name="before_sync")
async def misconfigured_before_sync(params: TransitionInput) -> Action:
    return Action(action="BOGUS")


@pytest.mark.asyncio
async def test_unknown_action_fails_execution(temporal_env):
    task_queue = f"test-queue-{uuid.uuid4()}"
    async with Worker(
        temporal_env.client,
        task_queue=task_queue,
        workflows=[ConnectionSyncWorkflow],
        activities=[misconfigured_before_sync],
    ):
        with pytest.raises(WorkflowFailureError) as exc_info:
            await temporal_env.client.execute_workflow(
                ConnectionSyncWorkflow.run,
                OrchestrationInput(connection_id="c1"),
                id=f"connection-c1-{uuid.uuid4()}",
                task_queue=task_queue,
            )

    cause = exc_info.value.cause
    assert isinstance(cause, ApplicationError)
    assert cause.type == "ConfigurationError"
    assert cause.non_retryable
    assert "BOGUS" in cause.message
