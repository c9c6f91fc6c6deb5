"""
Connection Sync Workflow

Durable per-connection state machine: reserve, run, release, sleep until the
next cron fire time, then start over as a fresh execution. Every store access
happens in an activity; the workflow only dispatches on the Action each
transition returns.
"""
from datetime import datetime, timedelta
from typing import Any, Dict

from temporalio import workflow
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from syncline.activities.sync_activities import SyncActivities
    from syncline.core.retry_config import get_retry_policy, get_timeout
    from syncline.workflows.types import (
        AFTER_SLEEP,
        AFTER_SYNC,
        BEFORE_SYNC,
        LOOP,
        RUN,
        TERMINATE,
        WAIT,
        Action,
        OrchestrationInput,
        RecordExecutionInput,
        TransitionInput,
    )


@workflow.defn(name="ConnectionSyncWorkflow")
class ConnectionSyncWorkflow:
    def __init__(self) -> None:
        self._runs = 0

    @workflow.run
    async def run(self, params: OrchestrationInput) -> Dict[str, Any]:
        connection_id = params.connection_id
        workflow.logger.info(
            f"ConnectionSyncWorkflow started for connection {connection_id} "
            f"(restart {params.restart_count})"
        )

        if params.restart_count > 0:
            await workflow.execute_activity(
                SyncActivities.record_execution,
                RecordExecutionInput(connection_id=connection_id, execution_id=workflow.info().run_id),
                start_to_close_timeout=get_timeout("record_execution"),
                retry_policy=get_retry_policy("transition"),
            )

        action = Action(action=BEFORE_SYNC)
        while True:

            if action.action == BEFORE_SYNC:
                action = await self._transition(SyncActivities.before_sync, connection_id)

            elif action.action == RUN:
                await workflow.execute_activity(
                    SyncActivities.run_job,
                    action.job,
                    start_to_close_timeout=timedelta(seconds=params.job_timeout_seconds),
                    retry_policy=get_retry_policy("no_retry"),
                )
                self._runs += 1
                action = Action(action=AFTER_SYNC)

            elif action.action == AFTER_SYNC:
                action = await self._transition(SyncActivities.after_sync, connection_id)

            elif action.action == WAIT:
                delay = datetime.fromisoformat(action.wait_until) - workflow.now()
                if delay > timedelta(0):
                    workflow.logger.info(f"Connection {connection_id} sleeping until {action.wait_until}")
                    await workflow.sleep(delay)
                action = Action(action=AFTER_SLEEP)

            elif action.action == AFTER_SLEEP:
                action = await self._transition(SyncActivities.after_sleep, connection_id)

            elif action.action == LOOP:
                workflow.logger.info(f"Connection {connection_id} continuing as new")
                workflow.continue_as_new(
                    OrchestrationInput(
                        connection_id=connection_id,
                        restart_count=params.restart_count + 1,
                        job_timeout_seconds=params.job_timeout_seconds,
                    )
                )

            elif action.action == TERMINATE:
                workflow.logger.info(f"ConnectionSyncWorkflow finished for connection {connection_id}")
                return {
                    "connection_id": connection_id,
                    "restart_count": params.restart_count,
                    "runs": self._runs,
                }

            else:
                raise ApplicationError(
                    f"Unknown orchestration action: {action.action}",
                    type="ConfigurationError",
                    non_retryable=True,
                )

    async def _transition(self, activity_fn, connection_id: str) -> Action:
        return await workflow.execute_activity(
            activity_fn,
            TransitionInput(connection_id=connection_id, now=workflow.now().isoformat()),
            start_to_close_timeout=get_timeout("transition"),
            retry_policy=get_retry_policy("transition"),
        )
