"""
Connection Sync Activities

The store-touching transitions of the connection state machine, plus the
activity that runs one sync job. Each transition returns the next Action for
the workflow to dispatch on.
"""
import logging
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from temporalio import activity
from temporalio.exceptions import ApplicationError

from syncline.core.config import Settings, get_settings
from syncline.core.errors import (
    ConfigurationError,
    ConflictError,
    IntegrityError,
    RetryLimitExceededError,
    StoreUnavailableError,
    SynclineError,
)
from syncline.core.monitoring import MetricsRegistry
from syncline.core.structured_logging import redact
from syncline.ingestion.job import JobArgs, build_job
from syncline.ingestion.registry import ConnectorRegistry
from syncline.stores.base import Stores
from syncline.workflows.types import (
    RUN,
    TERMINATE,
    Action,
    RecordExecutionInput,
    TransitionInput,
)
from syncline.workflows.verdicts import decide_after_sleep, decide_after_sync

logger = logging.getLogger(__name__)


def _non_retryable(error: SynclineError) -> ApplicationError:
    return ApplicationError(
        error.message,
        error.to_dict(),
        type=type(error).__name__,
        non_retryable=True,
    )


class SyncActivities:
    def __init__(
        self,
        stores: Stores,
        registry: ConnectorRegistry,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.stores = stores
        self.registry = registry
        self.http_client = http_client
        self.settings = settings or get_settings()
        self.metrics = MetricsRegistry()

    def _verdict(self, transition: str, action: Action) -> Action:
        self.metrics.orchestration_verdicts.labels(transition=transition, action=action.action).inc()
        return action

    async def _release(self, connection_id: str) -> None:
        """Give back a reservation this activity will not hand to a job."""
        try:
            await self.stores.connections.abort(connection_id)
        except StoreUnavailableError as e:
            activity.logger.error(
                f"Could not release connection {connection_id}, run 'syncline abort' once the store is back: {e.message}"
            )

    @activity.defn(name="before_sync")
    async def before_sync(self, params: TransitionInput) -> Action:
        """
        Reserve the connection and describe the job to run.

        A denied reservation means another execution holds the connection, so
        this orchestration ends. Records missing right after a successful
        reservation are an integrity failure. Any failure after the
        reservation gives the token back first, so a retry can reserve again.
        """
        connection_id = params.connection_id
        token = await self.stores.connections.reserve(connection_id)
        if token is None:
            activity.logger.warning(f"Connection {connection_id} is already running or missing, terminating")
            return self._verdict("before_sync", Action(action=TERMINATE))

        try:
            connection = await self.stores.connections.get(connection_id)
            if connection is None:
                raise IntegrityError("SYNC-2004", connection_id=connection_id)

            source = await self.stores.sources.get(connection.source_id)
            if source is None:
                raise IntegrityError("SYNC-2002", source_id=connection.source_id)

            destination = await self.stores.destinations.get(connection.destination_id)
            if destination is None:
                raise IntegrityError("SYNC-2003", destination_id=connection.destination_id)
        except IntegrityError as e:
            activity.logger.error(f"Reserved connection {connection_id} is incomplete: {e.message}")
            await self._release(connection_id)
            raise _non_retryable(e)
        except StoreUnavailableError as e:
            activity.logger.error(f"Store failed after reserving connection {connection_id}: {e.message}")
            await self._release(connection_id)
            raise _non_retryable(e)
        except Exception:
            await self._release(connection_id)
            raise

        job = JobArgs(
            job_id=str(uuid.uuid4()),
            source_provider=source.provider,
            source_credentials=source.credentials,
            source_options=source.options,
            destination_provider=destination.provider,
            destination_credentials=destination.credentials,
            destination_options=destination.options,
        )
        activity.logger.info(f"Reserved connection {connection_id} for job {job.job_id}")
        return self._verdict("before_sync", Action(action=RUN, token=token, job=job))

    @activity.defn(name="run_job")
    async def run_job(self, params: JobArgs) -> Dict[str, Any]:
        """Run one sync job to completion. Never retried by Temporal."""
        activity.logger.debug(f"Job arguments: {redact(asdict(params))}")
        activity.logger.info(
            f"Running job {params.job_id} ({params.source_provider} -> {params.destination_provider})"
        )
        try:
            job = build_job(
                params,
                self.registry,
                client=self.http_client,
                timeout=self.settings.http_timeout_seconds,
                max_retries=self.settings.max_fetch_retries,
            )
            result = await job.run()
        except (ConfigurationError, RetryLimitExceededError) as e:
            activity.logger.error(f"Job {params.job_id} failed: {e.message}")
            raise _non_retryable(e)

        return result.to_dict()

    @activity.defn(name="after_sync")
    async def after_sync(self, params: TransitionInput) -> Action:
        """Release the connection and schedule the next run."""
        connection_id = params.connection_id
        if not await self.stores.connections.finish(connection_id):
            # Aborted by an operator while the job ran
            activity.logger.warning(f"Connection {connection_id} held no run token at finish")

        connection = await self.stores.connections.get(connection_id)
        if connection is None:
            raise _non_retryable(IntegrityError("SYNC-2004", connection_id=connection_id))

        action = decide_after_sync(connection, datetime.fromisoformat(params.now))
        activity.logger.info(f"Connection {connection_id} next runs at {action.wait_until}")
        return self._verdict("after_sync", action)

    @activity.defn(name="after_sleep")
    async def after_sleep(self, params: TransitionInput) -> Action:
        """Re-read the connection after a WAIT and decide whether to run again."""
        connection = await self.stores.connections.get(params.connection_id)
        action = decide_after_sleep(connection, datetime.fromisoformat(params.now))
        if action.action == TERMINATE:
            activity.logger.info(f"Connection {params.connection_id} was deleted or is running, terminating")
        return self._verdict("after_sleep", action)

    @activity.defn(name="record_execution")
    async def record_execution(self, params: RecordExecutionInput) -> None:
        try:
            await self.stores.connections.set_execution(params.connection_id, params.execution_id)
        except ConflictError:
            # Deleted connections are dropped by the next reservation
            activity.logger.warning(f"Connection {params.connection_id} no longer exists")
