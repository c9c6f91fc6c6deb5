"""
Store Abstractions

Record types and the interfaces every persistence backend implements.

The connection store carries the reservation protocol: ``reserve``,
``finish`` and ``abort`` are single conditional writes against the
connection's run token. A reservation that is denied is an expected control
signal (``None`` / ``False``), never an exception. Backend failures surface as
``StoreUnavailableError``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Connection:
    """A scheduled pairing of one source and one destination."""
    id: str
    source_id: str
    destination_id: str
    schedule: str
    created_at: datetime
    run_token: Optional[str] = None
    last_ran_at: Optional[datetime] = None
    execution_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.run_token is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "destination_id": self.destination_id,
            "schedule": self.schedule,
            "run_token": self.run_token,
            "execution_id": self.execution_id,
            "last_ran_at": self.last_ran_at.isoformat() if self.last_ran_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ConnectorConfig:
    """A stored source or destination: provider key plus its configuration."""
    id: str
    provider: str
    created_at: datetime
    credentials: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


class ConnectionStore(ABC):
    """Connection records plus the run-token reservation protocol."""

    @abstractmethod
    async def get(self, connection_id: str) -> Optional[Connection]:
        pass

    @abstractmethod
    async def get_all(self) -> List[Connection]:
        pass

    @abstractmethod
    async def create(self, source_id: str, destination_id: str, schedule: str) -> Connection:
        pass

    @abstractmethod
    async def update(self, connection_id: str, *, schedule: str) -> None:
        """Change the schedule. Raises ConflictError if the connection is missing."""

    @abstractmethod
    async def delete(self, connection_id: str) -> None:
        pass

    @abstractmethod
    async def reserve(self, connection_id: str) -> Optional[str]:
        """Mint and store a run token iff the connection exists and holds none."""

    @abstractmethod
    async def finish(self, connection_id: str) -> bool:
        """Clear the token and stamp last_ran_at; False if no token was held."""

    @abstractmethod
    async def abort(self, connection_id: str) -> bool:
        """Clear the token without stamping last_ran_at; False if none was held."""

    @abstractmethod
    async def set_execution(self, connection_id: str, execution_id: str) -> None:
        """Record the latest orchestration execution. Raises ConflictError if missing."""


class RecordStore(ABC):
    """CRUD for source or destination records."""

    kind: str = "record"

    @abstractmethod
    async def get(self, record_id: str) -> Optional[ConnectorConfig]:
        pass

    @abstractmethod
    async def get_all(self) -> List[ConnectorConfig]:
        pass

    @abstractmethod
    async def create(
        self,
        provider: str,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> ConnectorConfig:
        pass

    @abstractmethod
    async def update(
        self,
        record_id: str,
        *,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Replace credentials and/or options. Raises ConflictError if missing."""

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        pass


@dataclass
class Stores:
    """The three stores a state machine transition reads from."""
    connections: ConnectionStore
    sources: RecordStore
    destinations: RecordStore
