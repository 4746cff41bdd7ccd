"""Unit tests for engines.connection.Connection (async facade over a raw connection)."""

import asyncio

import pytest

from moduledb.core.errors import PoolError, QueryError, ResourceError, TransactionError
from moduledb.engines import Connection
from tests.utils.fake_db import FakeDatabase, main_module, make_pool_manager


def _run(coro) -> object:
    return asyncio.run(coro)


def test_acquire_query_close_returns_to_pool() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)

    async def run() -> object:
        conn = await Connection.acquire(pm, "main")
        try:
            return await conn.query("SELECT 1")
        finally:
            await conn.close()

    assert _run(run()) == [{"1": 1}]
    assert pm.stats()["main"]["idle_connections"] == 1
    assert db.close_calls == 0


def test_acquire_unknown_module_raises_pool_error() -> None:
    pm = make_pool_manager(FakeDatabase())
    with pytest.raises(PoolError):
        _run(Connection.acquire(pm, "nope"))


def test_query_failure_raises_query_error_chained() -> None:
    pm = make_pool_manager(FakeDatabase())

    async def run() -> None:
        conn = await Connection.acquire(pm, "main")
        try:
            await conn.query("INVALID SQL")
        finally:
            await conn.close()

    with pytest.raises(QueryError, match="Query failed on module 'main'") as exc_info:
        _run(run())
    assert "syntax" in str(exc_info.value.__cause__)


def test_transaction_primitives_raise_transaction_error() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    db.fail_begin = True

    async def run() -> None:
        conn = await Connection.acquire(pm, "main")
        try:
            await conn.begin_transaction()
        finally:
            await conn.close()

    with pytest.raises(TransactionError, match="Could not begin"):
        _run(run())


def test_operations_after_close_raise_resource_error() -> None:
    pm = make_pool_manager(FakeDatabase())

    async def run() -> Connection:
        conn = await Connection.acquire(pm, "main")
        await conn.close()
        return conn

    conn = _run(run())
    assert conn.closed is True
    with pytest.raises(ResourceError, match="closed"):
        _run(conn.query("SELECT 1"))
    with pytest.raises(ResourceError):
        _run(conn.commit())
    # second close is a no-op
    _run(conn.close())
    assert pm.stats()["main"]["idle_connections"] == 1


def test_discard_close_drops_connection() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)

    async def run() -> None:
        conn = await Connection.acquire(pm, "main")
        await conn.close(discard=True)

    _run(run())
    assert db.close_calls == 1
    assert pm.stats()["main"]["idle_connections"] == 0


def test_unpooled_module_disconnects_on_close() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, {"report": main_module(use_pool=False)})

    async def run() -> Connection:
        conn = await Connection.acquire(pm, "report")
        await conn.query("SELECT 1")
        await conn.close()
        return conn

    conn = _run(run())
    assert conn.pooled is False
    assert db.close_calls == 1
    assert pm.stats()["report"]["idle_connections"] == 0


def test_unpooled_close_failure_raises_resource_error() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, {"report": main_module(use_pool=False)})

    async def run() -> None:
        conn = await Connection.acquire(pm, "report")
        db.fail_close = True
        await conn.close()

    with pytest.raises(ResourceError, match="Could not release"):
        _run(run())
