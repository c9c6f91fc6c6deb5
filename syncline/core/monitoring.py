"""
Monitoring Core

Prometheus metrics registry and setup.
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)


class MetricsRegistry:
    """
    Central registry for Prometheus metrics.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(MetricsRegistry, cls).__new__(cls)
            cls._instance._init_metrics()
        return cls._instance

    def _init_metrics(self):
        # Activity Metrics
        self.activity_executions = Counter(
            'syncline_activity_executions_total',
            'Total number of activity executions',
            ['activity_type', 'status']
        )
        self.activity_duration = Histogram(
            'syncline_activity_duration_seconds',
            'Time spent executing activities',
            ['activity_type']
        )

        # Orchestration Metrics
        self.orchestration_verdicts = Counter(
            'syncline_orchestration_verdicts_total',
            'Verdicts returned by state machine transitions',
            ['transition', 'action']
        )

        # Pagination Metrics
        self.pages_fetched = Counter(
            'syncline_pages_fetched_total',
            'Successful page fetches',
            ['source', 'stream']
        )
        self.fetch_retries = Counter(
            'syncline_fetch_retries_total',
            'Non-2xx responses that triggered a retry',
            ['source', 'stream', 'status_code']
        )
        self.records_written = Counter(
            'syncline_records_written_total',
            'Records handed to destinations',
            ['source', 'stream', 'destination']
        )

    def start_server(self, port: int = 9090):
        """Start Prometheus HTTP server."""
        try:
            start_http_server(port)
            logger.info(f"Prometheus metrics server started on port {port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise
