"""Syncline persistence: connection reservation protocol and record stores."""
from .base import Connection, ConnectionStore, ConnectorConfig, RecordStore, Stores
from .memory import InMemoryConnectionStore, InMemoryRecordStore, make_memory_stores
from .sql import SqlConnectionStore, SqlRecordStore, make_sql_stores

__all__ = [
    "Connection", "ConnectionStore", "ConnectorConfig", "RecordStore", "Stores",
    "InMemoryConnectionStore", "InMemoryRecordStore", "make_memory_stores",
    "SqlConnectionStore", "SqlRecordStore", "make_sql_stores",
]
