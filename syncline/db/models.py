"""
Persisted records.

One table per record kind, keyed by a synthetic UUID string. The
``run_token`` column on ``connections`` is the distributed lock: it is only
ever written through conditional UPDATE statements in
``syncline.stores.sql``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from syncline.db.session import Base


class ConnectionRecord(Base):
    __tablename__ = "connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_id: Mapped[str] = mapped_column(String(36), nullable=False)
    destination_id: Mapped[str] = mapped_column(String(36), nullable=False)
    schedule: Mapped[str] = mapped_column(String(255), nullable=False)
    run_token: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    execution_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_ran_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SourceRecord(Base):
    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider: Mapped[str] = mapped_column(String(128), nullable=False)
    credentials: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    options: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class DestinationRecord(Base):
    __tablename__ = "destinations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider: Mapped[str] = mapped_column(String(128), nullable=False)
    credentials: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    options: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
