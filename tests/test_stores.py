"""
Tests for Connection and Record Stores

Verifies the run-token reservation protocol against both the in-memory and
the SQLAlchemy (SQLite) backends.
"""
import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from syncline.core.errors import ConfigurationError, ConflictError, StoreUnavailableError
from syncline.db import init_db
from syncline.stores import make_memory_stores, make_sql_stores

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


@pytest_asyncio.fixture(params=["memory", "sql"])
async def backend(request, tmp_path):
    """Stores for each backend, sharing a fixed clock."""
    if request.param == "memory":
        yield make_memory_stores(clock=fixed_clock)
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'syncline.db'}")
    await init_db(engine)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield make_sql_stores(factory, clock=fixed_clock)
    await engine.dispose()


@pytest_asyncio.fixture
async def connection(backend):
    return await backend.connections.create("src-1", "dst-1", "*/5 * * * *")


class TestReservation:
    """Test reserve / finish / abort."""

    @pytest.mark.asyncio
    async def test_reserve_grants_token_once(self, backend, connection):
        token = await backend.connections.reserve(connection.id)
        assert token

        assert await backend.connections.reserve(connection.id) is None
        stored = await backend.connections.get(connection.id)
        assert stored.run_token == token
        assert stored.is_running

    @pytest.mark.asyncio
    async def test_reserve_missing_connection(self, backend):
        assert await backend.connections.reserve("missing") is None

    @pytest.mark.asyncio
    async def test_concurrent_reserve_has_one_winner(self, backend, connection):
        results = await asyncio.gather(*[backend.connections.reserve(connection.id) for _ in range(5)])
        assert len([token for token in results if token]) == 1

    @pytest.mark.asyncio
    async def test_finish_clears_token_and_stamps_last_ran_at(self, backend, connection):
        await backend.connections.reserve(connection.id)

        assert await backend.connections.finish(connection.id) is True

        stored = await backend.connections.get(connection.id)
        assert stored.run_token is None
        assert stored.last_ran_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_finish_without_token_has_no_effect(self, backend, connection):
        assert await backend.connections.finish(connection.id) is False
        stored = await backend.connections.get(connection.id)
        assert stored.last_ran_at is None

    @pytest.mark.asyncio
    async def test_abort_clears_token_without_stamping(self, backend, connection):
        await backend.connections.reserve(connection.id)

        assert await backend.connections.abort(connection.id) is True
        assert await backend.connections.abort(connection.id) is False

        stored = await backend.connections.get(connection.id)
        assert stored.run_token is None
        assert stored.last_ran_at is None

    @pytest.mark.asyncio
    async def test_reserve_after_finish(self, backend, connection):
        first = await backend.connections.reserve(connection.id)
        await backend.connections.finish(connection.id)

        second = await backend.connections.reserve(connection.id)
        assert second and second != first


class TestConnectionCrud:

    @pytest.mark.asyncio
    async def test_create_and_get(self, backend, connection):
        stored = await backend.connections.get(connection.id)
        assert stored.source_id == "src-1"
        assert stored.destination_id == "dst-1"
        assert stored.created_at == FIXED_NOW
        assert [c.id for c in await backend.connections.get_all()] == [connection.id]

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_schedule(self, backend):
        with pytest.raises(ConfigurationError):
            await backend.connections.create("src-1", "dst-1", "not a cron")

    @pytest.mark.asyncio
    async def test_update_schedule(self, backend, connection):
        await backend.connections.update(connection.id, schedule="0 * * * *")
        assert (await backend.connections.get(connection.id)).schedule == "0 * * * *"

    @pytest.mark.asyncio
    async def test_update_missing_is_conflict(self, backend):
        with pytest.raises(ConflictError) as exc_info:
            await backend.connections.update("missing", schedule="0 * * * *")
        assert exc_info.value.code == "SYNC-3001"

    @pytest.mark.asyncio
    async def test_set_execution(self, backend, connection):
        await backend.connections.set_execution(connection.id, "run-42")
        assert (await backend.connections.get(connection.id)).execution_id == "run-42"

        with pytest.raises(ConflictError):
            await backend.connections.set_execution("missing", "run-43")

    @pytest.mark.asyncio
    async def test_delete(self, backend, connection):
        await backend.connections.delete(connection.id)
        assert await backend.connections.get(connection.id) is None

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, backend, connection):
        connection.schedule = "mutated"
        assert (await backend.connections.get(connection.id)).schedule == "*/5 * * * *"


class TestRecordStores:

    @pytest.mark.asyncio
    async def test_source_crud(self, backend):
        source = await backend.sources.create("github", {"token": "abc"}, {"owner": "acme"})

        stored = await backend.sources.get(source.id)
        assert stored.provider == "github"
        assert stored.credentials == {"token": "abc"}
        assert stored.options == {"owner": "acme"}

        await backend.sources.update(source.id, options={"owner": "other"})
        stored = await backend.sources.get(source.id)
        assert stored.options == {"owner": "other"}
        assert stored.credentials == {"token": "abc"}

        await backend.sources.delete(source.id)
        assert await backend.sources.get(source.id) is None

    @pytest.mark.asyncio
    async def test_destination_update_missing_is_conflict(self, backend):
        with pytest.raises(ConflictError):
            await backend.destinations.update("missing", options={})

    @pytest.mark.asyncio
    async def test_sources_and_destinations_are_separate(self, backend):
        source = await backend.sources.create("github")
        assert await backend.destinations.get(source.id) is None
        assert len(await backend.sources.get_all()) == 1
        assert await backend.destinations.get_all() == []


class TestStoreUnavailable:

    @pytest.mark.asyncio
    async def test_backend_failure_is_store_unavailable(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
        stores = make_sql_stores(async_sessionmaker(engine, expire_on_commit=False))

        with pytest.raises(StoreUnavailableError) as exc_info:
            await stores.connections.reserve("c1")

        assert not exc_info.value.retry_allowed
        await engine.dispose()
