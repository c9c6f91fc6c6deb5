"""
Orchestration verdicts.

Pure decisions over stored connection state plus "now"; the transition
activities call these after their store reads.
"""
from datetime import datetime
from typing import Optional

from syncline.core.scheduling import as_utc, next_fire_time
from syncline.stores.base import Connection
from syncline.workflows.types import LOOP, TERMINATE, WAIT, Action


def decide_after_sync(connection: Connection, now: datetime) -> Action:
    """After a run, wait for the schedule's next fire time after ``now``."""
    wait_until = next_fire_time(connection.schedule, now=now)
    return Action(action=WAIT, wait_until=wait_until.isoformat())


def decide_after_sleep(connection: Optional[Connection], now: datetime) -> Action:
    """
    Decide what to do once a WAIT timer fires.

    The schedule is re-anchored at the last completed run (or creation time if
    the connection never ran), so a schedule edited during the wait takes
    effect here. A deleted connection, or one another execution has reserved,
    ends this orchestration.
    """
    if connection is None or connection.is_running:
        return Action(action=TERMINATE)

    anchor = connection.last_ran_at or connection.created_at
    fire_at = next_fire_time(connection.schedule, now=anchor)
    if fire_at <= as_utc(now):
        return Action(action=LOOP)
    return Action(action=WAIT, wait_until=fire_at.isoformat())
