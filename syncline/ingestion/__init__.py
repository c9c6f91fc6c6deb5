"""Syncline ingestion: connector contracts, rate limiting and the pagination engine."""
from .types import (
    CredentialsProvider, Destination, DestinationContext, Request, Response,
    Source, SourceContext, Stream, default_transform,
)
from .rate_limit import (
    ExponentialBackoff, FixedSpacing, RemainingBudgetSpacing, RequestSpacing, ResetHeaderSpacing,
)
from .links import next_link, parse_link_header
from .registry import ConnectorRegistry, Registry, load_connector_modules
from .credentials import StaticCredentials, resolve_credentials
from .job import Job, JobArgs, JobResult, build_job

__all__ = [
    "CredentialsProvider", "Destination", "DestinationContext", "Request", "Response",
    "Source", "SourceContext", "Stream", "default_transform",
    "ExponentialBackoff", "FixedSpacing", "RemainingBudgetSpacing", "RequestSpacing",
    "ResetHeaderSpacing",
    "next_link", "parse_link_header",
    "ConnectorRegistry", "Registry", "load_connector_modules",
    "StaticCredentials", "resolve_credentials",
    "Job", "JobArgs", "JobResult", "build_job",
]
