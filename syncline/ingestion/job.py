"""
Sync Job / Pagination Engine

One Job walks every stream of one source and forwards each page of records
to one destination.

Traversal is parent-major and depth-first: a child stream is paged to
completion for one parent record before the parent's next record is
considered. Within one (stream, context) pair requests are strictly
sequential and spaced by the source's rate-limit policy. Non-2xx responses
are retried with the identical request up to ``max_retries`` times; one more
failure aborts the whole job.

Known gap: the first request of a stream is not spaced from the last request
of the previous stream, so sibling streams of one source can briefly exceed a
provider's limit at the boundary.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from syncline.core.errors import ConfigurationError, RetryLimitExceededError
from syncline.core.monitoring import MetricsRegistry
from syncline.core.structured_logging import with_correlation_id
from syncline.ingestion.credentials import CredentialsCache, resolve_credentials
from syncline.ingestion.registry import ConnectorRegistry
from syncline.ingestion.types import (
    CredentialsProvider,
    Destination,
    DestinationContext,
    Request,
    Response,
    Source,
    SourceContext,
    Stream,
    as_request,
    collect_headers,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3

BatchCallback = Callable[[List[Any]], Awaitable[None]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobResult:
    """Summary of one completed job."""
    job_id: str
    source: str
    destination: str
    pages: int = 0
    retries: int = 0
    records: Dict[str, int] = field(default_factory=dict)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Job:
    """
    One complete execution of a source's streams into a destination.

    Sources, streams and destinations handed to a Job must be fresh instances;
    their internal cursors and backoff counters are not reset between jobs.
    """

    def __init__(
        self,
        job_id: str,
        source: Source,
        destination: Destination,
        credentials: Optional[Dict[str, CredentialsProvider]] = None,
        source_options: Optional[Dict[str, Any]] = None,
        destination_options: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.id = job_id
        self.source = source
        self.destination = destination
        self.destination_context = DestinationContext(
            job_id=job_id,
            source_options=dict(source_options or {}),
            destination_options=dict(destination_options or {}),
        )
        self.credentials = CredentialsCache(credentials or {})
        self.max_retries = max_retries
        self._client = client
        self._timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self.metrics = MetricsRegistry()
        self.result = JobResult(job_id=job_id, source=source.name, destination=destination.name)

    async def run(self) -> JobResult:
        with with_correlation_id(self.id):
            logger.info(f"Starting job {self.id} ({self.source.name} -> {self.destination.name})")
            self.result.started_at = self._clock().isoformat()

            owns_client = self._client is None
            client = self._client or httpx.AsyncClient(timeout=self._timeout)
            try:
                async with self.destination:
                    for stream in self.source.streams:
                        await self.exec_stream(client, stream)
            finally:
                if owns_client:
                    await client.aclose()

            self.result.finished_at = self._clock().isoformat()
            logger.info(
                f"Finished job {self.id} ({self.source.name} -> {self.destination.name}): "
                f"{self.result.pages} pages, {sum(self.result.records.values())} records"
            )
            return self.result

    async def exec_stream(self, client: httpx.AsyncClient, stream: Stream) -> None:
        """Traverse one listed stream and write every batch it yields."""

        async def write(records: List[Any]) -> None:
            await self.destination.write(
                self.source.name,
                stream.name,
                records,
                self._clock(),
                self.destination_context,
            )
            self.result.records[stream.name] = self.result.records.get(stream.name, 0) + len(records)
            self.metrics.records_written.labels(
                source=self.source.name, stream=stream.name, destination=self.destination.name
            ).inc(len(records))

        await self.read_stream(client, stream, None, write)

    async def read_stream(
        self,
        client: httpx.AsyncClient,
        stream: Stream,
        context: Any,
        callback: BatchCallback,
    ) -> None:
        """Page through ``stream``; for a child, once per record of its parent."""
        if stream.parent is None:
            await self.paginate(client, stream, context, callback)
            return

        async def for_each_parent_record(records: List[Any]) -> None:
            for record in records:
                await self.paginate(client, stream, record, callback)

        await self.read_stream(client, stream.parent, None, for_each_parent_record)

    async def paginate(
        self,
        client: httpx.AsyncClient,
        stream: Stream,
        context: Any,
        callback: BatchCallback,
    ) -> None:
        """Fetch loop for one (stream, context) pair."""
        source_context = SourceContext(credentials=await self.credentials.get(self.source.name))
        headers = self.source.headers(source_context) or {}

        logger.info(f"Starting stream '{stream.name}'")

        request: Optional[Request] = as_request(stream.seed(context))
        attempts = 0
        spacing_ms: Optional[int] = None

        while request is not None:
            if spacing_ms is not None:
                await self._sleep(spacing_ms / 1000)

            logger.info(f"Fetching '{request.url}'")
            response = await self.fetch(client, request, headers)

            if response.ok:
                records = stream.transform(response.body, context)
                await callback(records)
                self.result.pages += 1
                self.metrics.pages_fetched.labels(source=self.source.name, stream=stream.name).inc()
                logger.info(f"Successfully fetched {request.url} ({len(records)} records)")

                attempts = 0
                continuation = stream.next(response, records, context)
                if not continuation:
                    break
                request = as_request(continuation)
            else:
                attempts += 1
                self.result.retries += 1
                self.metrics.fetch_retries.labels(
                    source=self.source.name, stream=stream.name, status_code=str(response.status_code)
                ).inc()
                logger.warning(
                    f"Received {response.status_code} while fetching '{request.url}' "
                    f"(attempt {attempts}): {response.body[:200]}"
                )
                if attempts > self.max_retries:
                    logger.error(f"Exceeded maximum attempts while fetching '{request.url}', aborting")
                    raise RetryLimitExceededError(request.url, attempts, response.status_code)

            spacing_ms = self.source.request_spacing(response)

        logger.info(f"Finished stream '{stream.name}'")

    async def fetch(
        self,
        client: httpx.AsyncClient,
        request: Request,
        headers: Dict[str, str],
    ) -> Response:
        raw = await client.request(
            request.method,
            request.url,
            headers={**headers, **(request.headers or {})},
            content=request.body,
        )
        return Response(
            url=request.url,
            status_code=raw.status_code,
            headers=collect_headers(raw.headers.multi_items()),
            body=raw.text,
        )


# =============================================================================
# Job construction
# =============================================================================

@dataclass
class JobArgs:
    """Serializable description of one job, carried by the RUN transition."""
    job_id: str
    source_provider: str
    destination_provider: str
    source_credentials: Dict[str, Any] = field(default_factory=dict)
    source_options: Dict[str, Any] = field(default_factory=dict)
    destination_credentials: Dict[str, Any] = field(default_factory=dict)
    destination_options: Dict[str, Any] = field(default_factory=dict)


def build_job(
    args: JobArgs,
    registry: ConnectorRegistry,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
    max_retries: int = MAX_RETRIES,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Job:
    """
    Instantiate fresh source and destination connectors for ``args``.

    Raises:
        ConfigurationError: If a provider or credentials provider is not registered
    """
    source_factory = registry.sources.get(args.source_provider)
    if source_factory is None:
        raise ConfigurationError("SYNC-1001", provider=args.source_provider)

    destination_factory = registry.destinations.get(args.destination_provider)
    if destination_factory is None:
        raise ConfigurationError("SYNC-1002", provider=args.destination_provider)

    source = source_factory(args.source_options)
    destination = destination_factory(args.destination_options)
    credentials = {
        source.name: resolve_credentials(args.source_credentials, registry),
        destination.name: resolve_credentials(args.destination_credentials, registry),
    }

    return Job(
        args.job_id,
        source,
        destination,
        credentials=credentials,
        source_options=args.source_options,
        destination_options=args.destination_options,
        client=client,
        timeout=timeout,
        max_retries=max_retries,
        sleep=sleep,
    )
