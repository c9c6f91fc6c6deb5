"""
SQL store implementations.

Every run-token mutation is a single ``UPDATE ... WHERE`` whose predicate
carries the precondition; the affected row count tells us whether the
precondition held. Nothing here reads a row and then writes it back.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Type, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from syncline.core.errors import ConflictError, StoreUnavailableError
from syncline.core.scheduling import as_utc, validate_schedule
from syncline.db.models import ConnectionRecord, DestinationRecord, SourceRecord
from syncline.db.session import get_session_factory
from syncline.stores.base import (
    Connection,
    ConnectionStore,
    ConnectorConfig,
    RecordStore,
    Stores,
    utcnow,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _transaction(factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Session scope that commits on success and maps driver errors."""
    try:
        async with factory() as session:
            async with session.begin():
                yield session
    except DBAPIError as e:
        logger.error(f"Store operation failed: {e}")
        raise StoreUnavailableError(str(e.orig or e)) from e


def _to_connection(row: ConnectionRecord) -> Connection:
    return Connection(
        id=row.id,
        source_id=row.source_id,
        destination_id=row.destination_id,
        schedule=row.schedule,
        run_token=row.run_token,
        execution_id=row.execution_id,
        last_ran_at=as_utc(row.last_ran_at) if row.last_ran_at else None,
        created_at=as_utc(row.created_at),
    )


class SqlConnectionStore(ConnectionStore):

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable = utcnow,
    ):
        self._factory = session_factory or get_session_factory()
        self._clock = clock

    async def get(self, connection_id: str) -> Optional[Connection]:
        async with _transaction(self._factory) as session:
            row = await session.get(ConnectionRecord, connection_id)
            return _to_connection(row) if row else None

    async def get_all(self) -> List[Connection]:
        async with _transaction(self._factory) as session:
            rows = (await session.scalars(select(ConnectionRecord))).all()
            return [_to_connection(row) for row in rows]

    async def create(self, source_id: str, destination_id: str, schedule: str) -> Connection:
        validate_schedule(schedule)
        row = ConnectionRecord(
            id=str(uuid.uuid4()),
            source_id=source_id,
            destination_id=destination_id,
            schedule=schedule,
            created_at=self._clock(),
        )
        async with _transaction(self._factory) as session:
            session.add(row)
            connection = _to_connection(row)
        return connection

    async def _conditional_update(self, where, values: Dict[str, Any]) -> bool:
        stmt = (
            update(ConnectionRecord)
            .where(*where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with _transaction(self._factory) as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def update(self, connection_id: str, *, schedule: str) -> None:
        validate_schedule(schedule)
        updated = await self._conditional_update(
            [ConnectionRecord.id == connection_id],
            {"schedule": schedule},
        )
        if not updated:
            raise ConflictError("connection", connection_id)

    async def delete(self, connection_id: str) -> None:
        async with _transaction(self._factory) as session:
            await session.execute(delete(ConnectionRecord).where(ConnectionRecord.id == connection_id))

    async def reserve(self, connection_id: str) -> Optional[str]:
        token = str(uuid.uuid4())
        reserved = await self._conditional_update(
            [ConnectionRecord.id == connection_id, ConnectionRecord.run_token.is_(None)],
            {"run_token": token},
        )
        return token if reserved else None

    async def finish(self, connection_id: str) -> bool:
        return await self._conditional_update(
            [ConnectionRecord.id == connection_id, ConnectionRecord.run_token.is_not(None)],
            {"run_token": None, "last_ran_at": self._clock()},
        )

    async def abort(self, connection_id: str) -> bool:
        return await self._conditional_update(
            [ConnectionRecord.id == connection_id, ConnectionRecord.run_token.is_not(None)],
            {"run_token": None},
        )

    async def set_execution(self, connection_id: str, execution_id: str) -> None:
        updated = await self._conditional_update(
            [ConnectionRecord.id == connection_id],
            {"execution_id": execution_id},
        )
        if not updated:
            raise ConflictError("connection", connection_id)


class SqlRecordStore(RecordStore):

    def __init__(
        self,
        model: Type[Union[SourceRecord, DestinationRecord]],
        kind: str,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable = utcnow,
    ):
        self.model = model
        self.kind = kind
        self._factory = session_factory or get_session_factory()
        self._clock = clock

    def _to_config(self, row) -> ConnectorConfig:
        return ConnectorConfig(
            id=row.id,
            provider=row.provider,
            created_at=as_utc(row.created_at),
            credentials=dict(row.credentials or {}),
            options=dict(row.options or {}),
        )

    async def get(self, record_id: str) -> Optional[ConnectorConfig]:
        async with _transaction(self._factory) as session:
            row = await session.get(self.model, record_id)
            return self._to_config(row) if row else None

    async def get_all(self) -> List[ConnectorConfig]:
        async with _transaction(self._factory) as session:
            rows = (await session.scalars(select(self.model))).all()
            return [self._to_config(row) for row in rows]

    async def create(
        self,
        provider: str,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> ConnectorConfig:
        row = self.model(
            id=str(uuid.uuid4()),
            provider=provider,
            credentials=dict(credentials or {}),
            options=dict(options or {}),
            created_at=self._clock(),
        )
        async with _transaction(self._factory) as session:
            session.add(row)
            record = self._to_config(row)
        return record

    async def update(
        self,
        record_id: str,
        *,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        values: Dict[str, Any] = {}
        if credentials is not None:
            values["credentials"] = dict(credentials)
        if options is not None:
            values["options"] = dict(options)
        # Existence is still checked when there is nothing to change
        values = values or {"provider": self.model.provider}

        stmt = (
            update(self.model)
            .where(self.model.id == record_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with _transaction(self._factory) as session:
            result = await session.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(self.kind, record_id)

    async def delete(self, record_id: str) -> None:
        async with _transaction(self._factory) as session:
            await session.execute(delete(self.model).where(self.model.id == record_id))


def make_sql_stores(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    clock: Callable = utcnow,
) -> Stores:
    """Build SQL-backed stores sharing one session factory."""
    factory = session_factory or get_session_factory()
    return Stores(
        connections=SqlConnectionStore(factory, clock=clock),
        sources=SqlRecordStore(SourceRecord, "source", factory, clock=clock),
        destinations=SqlRecordStore(DestinationRecord, "destination", factory, clock=clock),
    )
