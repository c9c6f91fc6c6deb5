"""
SQL destination.

Appends every record as a JSON row to one table per (source, stream), created
on first use. Rows are never updated, so re-delivered pages produce duplicate
rows that share a record payload but differ in ``id`` and ``job_id``.

Options:
    url: SQLAlchemy database URL (async driver, e.g. ``sqlite+aiosqlite:///sync.db``)
"""
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from syncline.ingestion.types import Destination, DestinationContext

logger = logging.getLogger(__name__)


def table_name(source: str, stream: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "_", f"{source}_{stream}")


class SqlDestination(Destination):
    name = "sql"

    def __init__(self, options: Dict[str, Any]):
        if not options.get("url"):
            raise ValueError("SQL destination requires a database url")
        self.url = options["url"]
        self.metadata = MetaData()
        self.engine: Optional[AsyncEngine] = None

    async def open(self) -> None:
        self.engine = create_async_engine(self.url)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

    def _table(self, source: str, stream: str) -> Table:
        name = table_name(source, stream)
        if name not in self.metadata.tables:
            Table(
                name,
                self.metadata,
                Column("id", String(36), primary_key=True),
                Column("job_id", String(36), nullable=False, index=True),
                Column("data", JSON, nullable=False),
                Column("retrieved_at", DateTime(timezone=True), nullable=False),
            )
        return self.metadata.tables[name]

    async def write(
        self,
        source: str,
        stream: str,
        records: List[Any],
        retrieved_at: datetime,
        context: DestinationContext,
    ) -> None:
        if not records:
            return

        table = self._table(source, stream)
        rows = [
            {"id": str(uuid.uuid4()), "job_id": context.job_id, "data": record, "retrieved_at": retrieved_at}
            for record in records
        ]
        async with self.engine.begin() as conn:
            await conn.run_sync(table.create, checkfirst=True)
            await conn.execute(table.insert(), rows)
        logger.debug(f"Wrote {len(rows)} rows to {table.name}")
