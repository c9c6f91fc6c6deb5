"""
Orchestration Payloads

Dataclasses exchanged between the connection workflow and its activities.
Timestamps travel as ISO-8601 strings taken from workflow time, so transition
decisions stay deterministic under replay.
"""
from dataclasses import dataclass
from typing import Optional

from syncline.ingestion.job import JobArgs

BEFORE_SYNC = "BEFORE_SYNC"
RUN = "RUN"
AFTER_SYNC = "AFTER_SYNC"
WAIT = "WAIT"
AFTER_SLEEP = "AFTER_SLEEP"
LOOP = "LOOP"
TERMINATE = "TERMINATE"


@dataclass
class OrchestrationInput:
    connection_id: str
    restart_count: int = 0
    job_timeout_seconds: int = 3600


@dataclass
class Action:
    """Transition envelope: the next step plus the data it needs."""
    action: str
    token: Optional[str] = None
    job: Optional[JobArgs] = None
    wait_until: Optional[str] = None


@dataclass
class TransitionInput:
    connection_id: str
    now: str


@dataclass
class RecordExecutionInput:
    connection_id: str
    execution_id: str


__all__ = [
    "AFTER_SLEEP",
    "AFTER_SYNC",
    "BEFORE_SYNC",
    "LOOP",
    "RUN",
    "TERMINATE",
    "WAIT",
    "Action",
    "JobArgs",
    "OrchestrationInput",
    "RecordExecutionInput",
    "TransitionInput",
]
