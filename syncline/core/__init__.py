"""Syncline Core Package."""
from .config import Settings, get_settings
from .errors import (
    ConfigurationError, ConflictError, IntegrityError, NotFoundError,
    RateLimitHeaderError, RetryLimitExceededError, StoreUnavailableError, SynclineError,
)

__all__ = [
    "Settings", "get_settings",
    "SynclineError", "ConfigurationError", "ConflictError", "IntegrityError", "NotFoundError",
    "RateLimitHeaderError", "RetryLimitExceededError", "StoreUnavailableError",
]
