"""
Temporal Interceptors

Interceptors to capture metrics and correlation context for activities.
"""
import logging
import time
from typing import Any

from temporalio import activity
from temporalio.worker import ActivityInboundInterceptor, ExecuteActivityInput, Interceptor

from syncline.core.monitoring import MetricsRegistry
from syncline.core.structured_logging import with_activity_context, with_workflow_context

logger = logging.getLogger(__name__)


class MetricsInterceptor(Interceptor):
    def intercept_activity(self, next: ActivityInboundInterceptor) -> ActivityInboundInterceptor:
        return MetricsActivityInboundInterceptor(next)


class MetricsActivityInboundInterceptor(ActivityInboundInterceptor):
    def __init__(self, next: ActivityInboundInterceptor):
        super().__init__(next)
        self.metrics = MetricsRegistry()

    async def execute_activity(self, input: ExecuteActivityInput) -> Any:
        info = activity.info()
        activity_type = info.activity_type
        start_time = time.perf_counter()
        status = "success"

        with with_workflow_context(info.workflow_id, info.workflow_type), \
                with_activity_context(activity_type):
            try:
                return await super().execute_activity(input)
            except Exception:
                status = "failed"
                raise
            finally:
                duration = time.perf_counter() - start_time
                self.metrics.activity_executions.labels(activity_type=activity_type, status=status).inc()
                self.metrics.activity_duration.labels(activity_type=activity_type).observe(duration)
