"""
Error Catalog Module

Structured failure catalog with error codes and metadata.

Features:
- Canonical error codes (SYNC-XXXX format)
- Error categories (configuration, resource, conflict, store, external)
- Machine-readable error payloads for operators

Usage:
    from syncline.core.errors import ConflictError, IntegrityError

    raise IntegrityError("SYNC-2002", source_id=connection.source_id)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Error categories for classification."""
    CONFIGURATION = "configuration"      # Bad registry/provider/action setup
    RESOURCE = "resource"                # Record not found
    CONFLICT = "conflict"                # Failed conditional write
    INTEGRITY = "integrity"              # Records missing after a reservation
    STORE = "store"                      # Persistence backend failures
    EXTERNAL = "external"                # Source/destination API failures


@dataclass(frozen=True)
class ErrorDefinition:
    """Definition of an error in the catalog."""
    code: str                    # e.g., "SYNC-1001"
    message: str                 # Human-readable message template
    category: ErrorCategory
    description: str = ""
    retry_allowed: bool = False  # Would a Temporal retry help?

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "description": self.description,
            "retry_allowed": self.retry_allowed,
        }


# =============================================================================
# Error Catalog (Canonical Error Definitions)
# =============================================================================

ERROR_CATALOG: Dict[str, ErrorDefinition] = {
    # 1000-1999: Configuration
    "SYNC-1001": ErrorDefinition(
        code="SYNC-1001",
        message="Unknown source provider: {provider}",
        category=ErrorCategory.CONFIGURATION,
        description="No source factory is registered under this key",
    ),
    "SYNC-1002": ErrorDefinition(
        code="SYNC-1002",
        message="Unknown destination provider: {provider}",
        category=ErrorCategory.CONFIGURATION,
        description="No destination factory is registered under this key",
    ),
    "SYNC-1003": ErrorDefinition(
        code="SYNC-1003",
        message="Unknown credentials provider: {provider}",
        category=ErrorCategory.CONFIGURATION,
    ),
    "SYNC-1004": ErrorDefinition(
        code="SYNC-1004",
        message="Unknown orchestration action: {action}",
        category=ErrorCategory.CONFIGURATION,
        description="The state machine received an action it has no transition for",
    ),
    "SYNC-1005": ErrorDefinition(
        code="SYNC-1005",
        message="Invalid cron schedule: {schedule}",
        category=ErrorCategory.CONFIGURATION,
    ),

    # 2000-2999: Resource / integrity
    "SYNC-2001": ErrorDefinition(
        code="SYNC-2001",
        message="Connection not found: {connection_id}",
        category=ErrorCategory.RESOURCE,
    ),
    "SYNC-2002": ErrorDefinition(
        code="SYNC-2002",
        message="Source not found: {source_id}",
        category=ErrorCategory.INTEGRITY,
        description="The connection references a source that no longer exists",
    ),
    "SYNC-2003": ErrorDefinition(
        code="SYNC-2003",
        message="Destination not found: {destination_id}",
        category=ErrorCategory.INTEGRITY,
        description="The connection references a destination that no longer exists",
    ),
    "SYNC-2004": ErrorDefinition(
        code="SYNC-2004",
        message="Connection disappeared after reservation: {connection_id}",
        category=ErrorCategory.INTEGRITY,
    ),

    # 3000-3999: Conflicts
    "SYNC-3001": ErrorDefinition(
        code="SYNC-3001",
        message="Conditional update failed for {resource} {resource_id}",
        category=ErrorCategory.CONFLICT,
        description="The record did not satisfy the write precondition",
    ),

    # 4000-4999: Store
    "SYNC-4001": ErrorDefinition(
        code="SYNC-4001",
        message="Store unavailable: {reason}",
        category=ErrorCategory.STORE,
        description="Store unavailability ends the execution; the run token may need an operator abort",
    ),

    # 5000-5999: External APIs
    "SYNC-5001": ErrorDefinition(
        code="SYNC-5001",
        message="Exceeded maximum attempts while fetching '{url}', aborting",
        category=ErrorCategory.EXTERNAL,
        description="A stream request kept failing after all retries",
    ),
    "SYNC-5002": ErrorDefinition(
        code="SYNC-5002",
        message="Rate limit exhausted but no reset time was provided ({header})",
        category=ErrorCategory.EXTERNAL,
    ),
}


# =============================================================================
# Exception Classes
# =============================================================================

class SynclineError(Exception):
    """Base exception for Syncline errors."""

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **format_args,
    ):
        self.code = code
        self.details = details or dict(format_args)
        self.definition = get_error_definition(code)

        if self.definition:
            if message:
                self.message = message
            else:
                try:
                    self.message = self.definition.message.format(**format_args)
                except KeyError:
                    self.message = self.definition.message
            self.category = self.definition.category
        else:
            self.message = message or f"Unknown error: {code}"
            self.category = ErrorCategory.STORE

        super().__init__(self.message)

    @property
    def retry_allowed(self) -> bool:
        return bool(self.definition and self.definition.retry_allowed)

    def to_dict(self) -> Dict[str, Any]:
        """Payload for operator-facing logs and workflow failures."""
        payload = {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.details:
            payload["details"] = {
                k: v for k, v in self.details.items()
                if k not in ("password", "token", "secret", "credentials")
            }
        return payload


class ConfigurationError(SynclineError):
    """Registry, provider or state machine misconfiguration (1000 series)."""
    pass


class NotFoundError(SynclineError):
    """Record not found (2001)."""
    pass


class IntegrityError(SynclineError):
    """Records missing right after a successful reservation (2002-2004)."""
    pass


class ConflictError(SynclineError):
    """A conditional write did not meet its precondition (3000 series)."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__("SYNC-3001", resource=resource, resource_id=resource_id)
        self.resource = resource
        self.resource_id = resource_id


class StoreUnavailableError(SynclineError):
    """Persistence backend failure (4000 series)."""

    def __init__(self, reason: str):
        super().__init__("SYNC-4001", reason=reason)


class RetryLimitExceededError(SynclineError):
    """A stream request failed more times than the retry bound allows."""

    def __init__(self, url: str, attempts: int, status_code: int):
        super().__init__("SYNC-5001", url=url)
        self.url = url
        self.attempts = attempts
        self.status_code = status_code


class RateLimitHeaderError(SynclineError):
    """Provider reported an exhausted budget without a reset time."""

    def __init__(self, header: str):
        super().__init__("SYNC-5002", header=header)


# Error types the Temporal retry policy must never retry.
NON_RETRYABLE_ERROR_TYPES = [
    "ConfigurationError",
    "IntegrityError",
    "NotFoundError",
    "RetryLimitExceededError",
    "StoreUnavailableError",
]


def get_error_definition(code: str) -> Optional[ErrorDefinition]:
    """Look up an error definition by code."""
    return ERROR_CATALOG.get(code)
