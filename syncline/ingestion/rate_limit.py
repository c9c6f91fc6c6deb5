"""
Request Spacing Policies

Pluggable per-source rate limiting. A policy only answers one question: how
many milliseconds should the pagination engine wait before its next request,
given the latest response? The engine never issues concurrent requests for a
stream, so a well-chosen delay is enough to stay within provider limits.

Header values may arrive single or multi-valued; every lookup goes through
``Response.header`` which takes the first value.

Usage:
    class GitHubSource(Source):
        spacing = ResetHeaderSpacing()
"""
from __future__ import annotations

import abc
import logging
import time
from datetime import datetime
from typing import Callable, Collection, Optional

from syncline.core.errors import RateLimitHeaderError
from syncline.ingestion.types import DEFAULT_SPACING_MS, Response

logger = logging.getLogger(__name__)

# Providers have been seen rejecting requests for a second or two after
# their advertised reset time.
CLOCK_SKEW_PAD_MS = 5_000

# Wait applied when a budget is exhausted but the provider gave no reset time
MISSING_RESET_WAIT_MS = 5 * 60 * 1000


def numeric_header(response: Response, name: str) -> Optional[int]:
    value = response.header(name)
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except (ValueError, OverflowError):
        return None


def reset_epoch_ms(response: Response, name: str, unit: str = "seconds") -> Optional[int]:
    """
    Read a reset time header as epoch milliseconds.

    ``unit`` is "seconds" or "milliseconds" for numeric headers, or "iso" for
    ISO-8601 timestamps.
    """
    value = response.header(name)
    if value is None:
        return None
    if unit == "iso":
        try:
            return int(datetime.fromisoformat(value.strip().replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return None
    number = numeric_header(response, name)
    if number is None:
        return None
    return number * 1000 if unit == "seconds" else number


def sleep_until_reset_ms(reset_ms: int, now_ms: int, pad_ms: int = CLOCK_SKEW_PAD_MS) -> int:
    """Delay until ``reset_ms`` plus a safety pad; never less than the pad."""
    return max(reset_ms - now_ms + pad_ms, pad_ms)


class RequestSpacing(abc.ABC):
    """Computes the delay before the next request from the latest response."""

    @abc.abstractmethod
    def delay_ms(self, response: Response) -> int:
        pass


class FixedSpacing(RequestSpacing):
    """Same delay after every response."""

    def __init__(self, delay_ms: int = DEFAULT_SPACING_MS):
        self.delay = delay_ms

    def delay_ms(self, response: Response) -> int:
        return self.delay


class ExponentialBackoff(RequestSpacing):
    """
    Doubles the base delay for each consecutive throttling response, up to
    ``max_multiplier``; the first non-throttling response resets it.

    The counter lives on the policy instance, so it is scoped to one source
    instance and therefore to one job.
    """

    def __init__(
        self,
        base_ms: int = DEFAULT_SPACING_MS,
        max_multiplier: int = 16,
        throttle_statuses: Collection[int] = (429,),
        is_throttled: Optional[Callable[[Response], bool]] = None,
    ):
        self.base_ms = base_ms
        self.max_multiplier = max_multiplier
        self.throttle_statuses = set(throttle_statuses)
        self._is_throttled = is_throttled
        self.backoff_count = 0

    @property
    def multiplier(self) -> int:
        return min(2 ** self.backoff_count, self.max_multiplier)

    def throttled(self, response: Response) -> bool:
        if response.status_code in self.throttle_statuses:
            return True
        return bool(self._is_throttled and self._is_throttled(response))

    def delay_ms(self, response: Response) -> int:
        if self.throttled(response):
            logger.warning(
                f"Received {response.status_code} from {response.url}, backing off "
                f"(backoff_count={self.backoff_count})"
            )
            self.backoff_count += 1
        else:
            self.backoff_count = 0
        return self.base_ms * self.multiplier


class ResetHeaderSpacing(RequestSpacing):
    """
    Sleep until the advertised reset when the remaining budget hits zero.

    Falls back to ``Retry-After`` (seconds) for secondary limits, and to the
    default delay otherwise. An exhausted budget without a reset header is a
    provider contract violation and raises RateLimitHeaderError.
    """

    def __init__(
        self,
        remaining_header: str = "x-ratelimit-remaining",
        reset_header: str = "x-ratelimit-reset",
        retry_after_header: Optional[str] = "retry-after",
        reset_unit: str = "seconds",
        pad_ms: int = CLOCK_SKEW_PAD_MS,
        default_ms: int = DEFAULT_SPACING_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.remaining_header = remaining_header
        self.reset_header = reset_header
        self.retry_after_header = retry_after_header
        self.reset_unit = reset_unit
        self.pad_ms = pad_ms
        self.default_ms = default_ms
        self.clock = clock

    def delay_ms(self, response: Response) -> int:
        remaining = numeric_header(response, self.remaining_header)
        if remaining is not None and remaining <= 0:
            reset_ms = reset_epoch_ms(response, self.reset_header, self.reset_unit)
            if reset_ms is None:
                raise RateLimitHeaderError(self.reset_header)
            spacing = sleep_until_reset_ms(reset_ms, int(self.clock() * 1000), self.pad_ms)
            logger.warning(f"Rate limited for {spacing}ms (primary limit, {self.remaining_header}=0)")
            return spacing

        if self.retry_after_header:
            retry_after = numeric_header(response, self.retry_after_header)
            if retry_after:
                spacing = retry_after * 1000
                logger.warning(f"Rate limited for {spacing}ms (retry-after)")
                return spacing

        return self.default_ms


class RemainingBudgetSpacing(RequestSpacing):
    """
    Treat a remaining budget below ``floor`` as throttled and wait for the
    reported reset. Useful for cost-based limits where a single request may
    spend more than one unit, so waiting for zero is already too late.
    """

    def __init__(
        self,
        remaining_header: str,
        reset_header: str,
        floor: int = 1,
        reset_unit: str = "seconds",
        pad_ms: int = CLOCK_SKEW_PAD_MS,
        missing_reset_ms: int = MISSING_RESET_WAIT_MS,
        default_ms: int = DEFAULT_SPACING_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.remaining_header = remaining_header
        self.reset_header = reset_header
        self.floor = floor
        self.reset_unit = reset_unit
        self.pad_ms = pad_ms
        self.missing_reset_ms = missing_reset_ms
        self.default_ms = default_ms
        self.clock = clock

    def delay_ms(self, response: Response) -> int:
        remaining = numeric_header(response, self.remaining_header)
        if remaining is None or remaining >= self.floor:
            return self.default_ms

        reset_ms = reset_epoch_ms(response, self.reset_header, self.reset_unit)
        if reset_ms is None:
            logger.warning(
                f"{self.remaining_header}={remaining} below {self.floor} but no reset time; "
                f"waiting {self.missing_reset_ms}ms"
            )
            return self.missing_reset_ms

        spacing = sleep_until_reset_ms(reset_ms, int(self.clock() * 1000), self.pad_ms)
        logger.warning(f"Rate limited for {spacing}ms ({self.remaining_header}={remaining})")
        return spacing
