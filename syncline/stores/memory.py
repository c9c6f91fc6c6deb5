"""
In-memory store implementations.

For production, use the SQL stores instead. These are useful for testing and
local development; every mutation runs under one asyncio.Lock so the
reservation protocol stays a single test-and-set.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from syncline.core.errors import ConflictError
from syncline.core.scheduling import validate_schedule
from syncline.stores.base import (
    Connection,
    ConnectionStore,
    ConnectorConfig,
    RecordStore,
    Stores,
    utcnow,
)

logger = logging.getLogger(__name__)


class InMemoryConnectionStore(ConnectionStore):

    def __init__(self, clock: Callable = utcnow):
        self._clock = clock
        self._connections: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def get(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.get(connection_id)
        return copy.deepcopy(connection) if connection else None

    async def get_all(self) -> List[Connection]:
        return [copy.deepcopy(c) for c in self._connections.values()]

    async def create(self, source_id: str, destination_id: str, schedule: str) -> Connection:
        validate_schedule(schedule)
        connection = Connection(
            id=str(uuid.uuid4()),
            source_id=source_id,
            destination_id=destination_id,
            schedule=schedule,
            created_at=self._clock(),
        )
        async with self._lock:
            self._connections[connection.id] = connection
        return copy.deepcopy(connection)

    async def update(self, connection_id: str, *, schedule: str) -> None:
        validate_schedule(schedule)
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise ConflictError("connection", connection_id)
            connection.schedule = schedule

    async def delete(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)

    async def reserve(self, connection_id: str) -> Optional[str]:
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.run_token is not None:
                return None
            connection.run_token = str(uuid.uuid4())
            return connection.run_token

    async def finish(self, connection_id: str) -> bool:
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.run_token is None:
                return False
            connection.run_token = None
            connection.last_ran_at = self._clock()
            return True

    async def abort(self, connection_id: str) -> bool:
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.run_token is None:
                return False
            connection.run_token = None
            return True

    async def set_execution(self, connection_id: str, execution_id: str) -> None:
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise ConflictError("connection", connection_id)
            connection.execution_id = execution_id


class InMemoryRecordStore(RecordStore):

    def __init__(self, kind: str, clock: Callable = utcnow):
        self.kind = kind
        self._clock = clock
        self._records: Dict[str, ConnectorConfig] = {}
        self._lock = asyncio.Lock()

    async def get(self, record_id: str) -> Optional[ConnectorConfig]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record else None

    async def get_all(self) -> List[ConnectorConfig]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def create(
        self,
        provider: str,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> ConnectorConfig:
        record = ConnectorConfig(
            id=str(uuid.uuid4()),
            provider=provider,
            created_at=self._clock(),
            credentials=dict(credentials or {}),
            options=dict(options or {}),
        )
        async with self._lock:
            self._records[record.id] = record
        return copy.deepcopy(record)

    async def update(
        self,
        record_id: str,
        *,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise ConflictError(self.kind, record_id)
            if credentials is not None:
                record.credentials = dict(credentials)
            if options is not None:
                record.options = dict(options)

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            self._records.pop(record_id, None)


def make_memory_stores(clock: Callable = utcnow) -> Stores:
    """Build a fresh, empty set of in-memory stores."""
    return Stores(
        connections=InMemoryConnectionStore(clock=clock),
        sources=InMemoryRecordStore("source", clock=clock),
        destinations=InMemoryRecordStore("destination", clock=clock),
    )
