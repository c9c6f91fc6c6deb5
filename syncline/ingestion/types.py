"""
Connector Contracts

The capability interfaces every source, stream and destination implements,
plus the wire-level Request/Response descriptors the pagination engine
passes between them.

Usage:
    class IssuesStream(Stream):
        name = "issues"

        def seed(self, context):
            return "https://api.example.com/issues?page=1"

        def next(self, response, records, context):
            return next_link(response.headers.get("link"))
"""
from __future__ import annotations

import abc
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

if TYPE_CHECKING:
    from syncline.ingestion.rate_limit import RequestSpacing

HeaderValue = Union[str, List[str]]

# Spacing between consecutive requests when a source sets no policy
DEFAULT_SPACING_MS = 500


@dataclass
class Request:
    """One HTTP call a stream wants made."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, bytes]] = None


# A stream may hand back a bare URL for a GET, a full Request, or None to stop.
Continuation = Optional[Union[str, Request]]


def as_request(value: Union[str, Request]) -> Request:
    """Normalize a URL string or Request into a Request."""
    if isinstance(value, Request):
        return value
    return Request(url=value)


@dataclass
class Response:
    """
    Result of one HTTP call.

    Header names are lower-cased. A header sent once maps to a string; a
    header sent several times maps to the list of its values.
    """
    url: str
    status_code: int
    headers: Dict[str, HeaderValue]
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> Optional[str]:
        """First value of a header, whether single or multi-valued."""
        return first_header_value(self.headers.get(name.lower()))

    def json(self) -> Any:
        return json.loads(self.body)


def first_header_value(value: Optional[HeaderValue]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def collect_headers(items: Sequence[tuple]) -> Dict[str, HeaderValue]:
    """Fold ``(name, value)`` pairs into single or multi-valued headers."""
    headers: Dict[str, HeaderValue] = {}
    for name, value in items:
        key = name.lower()
        if key not in headers:
            headers[key] = value
        elif isinstance(headers[key], list):
            headers[key].append(value)
        else:
            headers[key] = [headers[key], value]
    return headers


def default_transform(raw: str) -> List[Any]:
    """Parse a JSON body; a list is the record list, anything else is one record."""
    data = json.loads(raw)
    if isinstance(data, list):
        return data
    return [data]


# =============================================================================
# Sources and Streams
# =============================================================================

class Stream(abc.ABC):
    """
    One paginated resource endpoint.

    A stream with a ``parent`` is seeded once per record its parent yields;
    that record is passed as ``context`` to ``seed``, ``next`` and
    ``transform``. Root streams receive ``None``.
    """

    name: str = ""
    parent: Optional["Stream"] = None

    @abc.abstractmethod
    def seed(self, context: Any) -> Union[str, Request]:
        """First request for this stream under ``context``."""

    def next(self, response: Response, records: List[Any], context: Any) -> Continuation:
        """Request for the following page, or None when the stream is exhausted."""
        return None

    def transform(self, raw: str, context: Any) -> List[Any]:
        return default_transform(raw)


@dataclass
class SourceContext:
    """What a source sees when building request headers."""
    credentials: Any = None


class Source(abc.ABC):
    """Named bundle of streams with its auth-header and rate-limit policies."""

    name: str = ""
    streams: List[Stream]

    # Default request spacing policy; see syncline.ingestion.rate_limit
    spacing: Optional["RequestSpacing"] = None

    def headers(self, context: SourceContext) -> Dict[str, str]:
        return {}

    def request_spacing(self, response: Response) -> int:
        """Milliseconds to wait before the next request, given the latest response."""
        if self.spacing is None:
            return DEFAULT_SPACING_MS
        return self.spacing.delay_ms(response)


# =============================================================================
# Destinations
# =============================================================================

@dataclass
class DestinationContext:
    """Per-job metadata handed to every destination write."""
    job_id: str
    source_options: Dict[str, Any] = field(default_factory=dict)
    destination_options: Dict[str, Any] = field(default_factory=dict)


class Destination(abc.ABC):
    """
    Sink receiving normalized batches.

    Delivery is at-least-once: a retried page or a re-run job may hand the
    same records to ``write`` again.
    """

    name: str = ""

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abc.abstractmethod
    async def write(
        self,
        source: str,
        stream: str,
        records: List[Any],
        retrieved_at: datetime,
        context: DestinationContext,
    ) -> None:
        """Persist one batch."""

    async def __aenter__(self) -> "Destination":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class CredentialsProvider(abc.ABC):
    """Produces the credentials value for one connector."""

    @abc.abstractmethod
    async def get(self) -> Any:
        pass
