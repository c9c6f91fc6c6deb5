"""
Retry Policy and Timeout Configuration

Centralized configuration for Temporal activity retry policies and timeouts.

Usage:
    from syncline.core.retry_config import get_retry_policy, get_timeout

    await workflow.execute_activity(
        SyncActivities.before_sync,
        params,
        start_to_close_timeout=get_timeout("transition"),
        retry_policy=get_retry_policy("transition"),
    )
"""
from datetime import timedelta

from temporalio.common import RetryPolicy

from syncline.core.errors import NON_RETRYABLE_ERROR_TYPES


# =============================================================================
# Retry Policies
# =============================================================================

# Store-backed state machine transitions (reserve, finish, reload).
# Unexpected worker failures are retried with backoff. Store outages end the
# execution, since a retried reservation would be denied by its own token.
TRANSITION_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    maximum_interval=timedelta(seconds=60),
    maximum_attempts=3,
    non_retryable_error_types=NON_RETRYABLE_ERROR_TYPES,
)


# RUN is never retried by Temporal: a failed job leaves its token in place
# and fails the enclosing execution. Bounded HTTP retries live in the
# pagination engine itself.
NO_RETRY = RetryPolicy(
    maximum_attempts=1
)


# =============================================================================
# Timeout Configurations
# =============================================================================

TIMEOUTS = {
    "transition": timedelta(seconds=30),   # Single store round trips
    "record_execution": timedelta(seconds=30),
}


def get_retry_policy(activity_type: str) -> RetryPolicy:
    """
    Get retry policy for activity type.

    Args:
        activity_type: "transition" or "no_retry"

    Raises:
        ValueError: If activity_type is unknown
    """
    policies = {
        "transition": TRANSITION_RETRY,
        "no_retry": NO_RETRY,
    }

    if activity_type not in policies:
        raise ValueError(
            f"Unknown activity_type: {activity_type}. "
            f"Must be one of: {list(policies.keys())}"
        )

    return policies[activity_type]


def get_timeout(timeout_key: str) -> timedelta:
    """
    Get timeout for operation type.

    Raises:
        ValueError: If timeout_key is unknown
    """
    if timeout_key not in TIMEOUTS:
        raise ValueError(
            f"Unknown timeout_key: {timeout_key}. "
            f"Must be one of: {list(TIMEOUTS.keys())}"
        )

    return TIMEOUTS[timeout_key]
