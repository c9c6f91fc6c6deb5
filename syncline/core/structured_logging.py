"""
Structured Logging with Correlation IDs

Context-aware structured logging for Temporal workflows, activities and jobs.
Every line emitted inside a context manager below carries the correlation,
workflow and activity identifiers of the surrounding execution.

Usage:
    from syncline.core.structured_logging import configure_logging, with_correlation_id

    configure_logging("INFO")

    with with_correlation_id(job_id):
        logger.info("Fetching page")
"""
from __future__ import annotations

import contextvars
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variable for correlation ID (job ID inside a run)
correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id',
    default=None
)

# Context variable for workflow ID
workflow_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'workflow_id',
    default=None
)

# Context variable for activity name
activity_name_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'activity_name',
    default=None
)


# =============================================================================
# Correlation ID Management
# =============================================================================

def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def get_workflow_id() -> Optional[str]:
    return workflow_id_var.get()


def get_activity_name() -> Optional[str]:
    return activity_name_var.get()


@contextmanager
def with_correlation_id(correlation_id: Optional[str] = None):
    """
    Context manager to set correlation ID for a block of code.

    Args:
        correlation_id: Correlation ID to use, or None to generate new one
    """
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def with_workflow_context(workflow_id: str, workflow_name: str):
    """Set workflow context for activity code running on behalf of a workflow."""
    workflow_token = workflow_id_var.set(workflow_id)
    try:
        yield workflow_id
    finally:
        workflow_id_var.reset(workflow_token)


@contextmanager
def with_activity_context(activity_name: str):
    token = activity_name_var.set(activity_name)
    try:
        yield activity_name
    finally:
        activity_name_var.reset(token)


# =============================================================================
# Structured Logging Formatter
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    Log formatter that adds correlation ID and structured fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = get_correlation_id() or "-"
        record.workflow_id = get_workflow_id() or "-"
        record.activity_name = get_activity_name() or "-"
        record.timestamp = datetime.now(timezone.utc).isoformat()
        return super().format(record)


# Format: [timestamp] [level] [correlation_id] [workflow_id] [activity_name] [logger] message
STRUCTURED_FORMAT = (
    "[%(timestamp)s] [%(levelname)s] "
    "[corr:%(correlation_id)s] [wf:%(workflow_id)s] [act:%(activity_name)s] "
    "[%(name)s] %(message)s"
)


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger (idempotent)."""
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            root.setLevel(level)
            return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(STRUCTURED_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)


# =============================================================================
# Security Helpers
# =============================================================================

# Fields that should never be logged
SENSITIVE_FIELD_NAMES = {
    "password", "secret", "token", "api_key", "apikey", "auth",
    "credential", "private_key", "access_token", "refresh_token",
    "cookie",
}


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Redact sensitive fields from data before logging.

    Nested dicts are filtered recursively; matching is by substring of the
    lower-cased key.
    """
    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELD_NAMES):
            filtered[key] = "***REDACTED***"
        elif isinstance(value, dict):
            filtered[key] = redact(value)
        else:
            filtered[key] = value
    return filtered
