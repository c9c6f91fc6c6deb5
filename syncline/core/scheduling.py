"""Cron evaluation for connection schedules.

Schedules are standard 5-field cron strings evaluated with croniter in UTC.
"Next fire time" is always strictly after the supplied anchor, so anchoring at
``last_ran_at`` resumes a schedule from the last completed run rather than
from wall-clock now.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from croniter import croniter

from syncline.core.errors import ConfigurationError


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_schedule(schedule: str) -> str:
    """Raise ConfigurationError unless ``schedule`` is a valid 5-field cron string."""
    if len(schedule.split()) != 5 or not croniter.is_valid(schedule):
        raise ConfigurationError("SYNC-1005", schedule=schedule)
    return schedule


def next_fire_time(schedule: str, *, now: Optional[datetime] = None) -> datetime:
    """Compute the next fire time for ``schedule`` strictly after ``now`` (UTC)."""
    validate_schedule(schedule)
    anchor = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return as_utc(croniter(schedule, anchor).get_next(datetime))
