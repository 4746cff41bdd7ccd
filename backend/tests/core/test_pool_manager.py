"""Unit tests for core.pool.manager.PoolManager with an in-memory driver."""

from unittest.mock import patch

import pytest

from moduledb.core.errors import PoolError
from tests.utils.fake_db import FakeDatabase, main_module, make_pool_manager


def test_pool_per_module_created_eagerly() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, {"main": main_module(), "audit": main_module(pool_size=2)})
    stats = pm.stats()
    assert set(stats) == {"main", "audit"}
    assert stats["audit"]["size"] == 2
    assert stats["main"]["idle_connections"] == 0
    # pools exist but no connection opened yet
    assert db.connections == []


def test_get_release_reuses_connection() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conn1 = pm.get_connection("main")
    assert pm.stats()["main"]["in_use_connections"] == 1
    pm.release(conn1, "main")
    assert pm.stats()["main"] == {
        "size": 10,
        "idle_connections": 1,
        "in_use_connections": 0,
    }
    conn2 = pm.get_connection("main")
    assert conn2 is conn1
    assert len(db.connections) == 1


def test_unknown_module_raises_pool_error() -> None:
    pm = make_pool_manager(FakeDatabase())
    with pytest.raises(PoolError, match="Unknown module 'missing'"):
        pm.get_connection("missing")


def test_invalid_module_name_raises_pool_error() -> None:
    pm = make_pool_manager(FakeDatabase())
    with pytest.raises(PoolError, match="Invalid module name"):
        pm.get_connection(None)  # type: ignore[arg-type]


def test_pool_exhaustion_raises_instead_of_waiting() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, pool_size=2)
    pm.get_connection("main")
    pm.get_connection("main")
    with pytest.raises(PoolError, match="exhausted"):
        pm.get_connection("main")
    assert len(db.connections) == 2


def test_connect_refused_frees_slot() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, pool_size=1)
    db.refuse_connect = True
    with pytest.raises(PoolError, match="Error connecting to database") as exc_info:
        pm.get_connection("main")
    assert exc_info.value.__cause__ is not None
    db.refuse_connect = False
    assert pm.get_connection("main") is db.connections[0]


def test_release_rolls_back_dangling_transaction() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conn = pm.get_connection("main")
    conn.begin()
    conn.cursor().execute("INSERT INTO test VALUES (%s)", [1])
    pm.release(conn, "main")
    assert db.rows == []
    assert conn.in_tx is False
    assert pm.stats()["main"]["idle_connections"] == 1


def test_release_discards_when_reset_fails() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conn = pm.get_connection("main")
    db.fail_rollback = True
    pm.release(conn, "main")
    assert conn.closed is True
    assert pm.stats()["main"]["idle_connections"] == 0
    assert pm.stats()["main"]["in_use_connections"] == 0


def test_discard_closes_and_frees_slot() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, pool_size=1)
    conn = pm.get_connection("main")
    pm.discard(conn, "main")
    assert conn.closed is True
    conn2 = pm.get_connection("main")
    assert conn2 is not conn


def test_expired_connection_is_replaced() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conn1 = pm.get_connection("main")
    pm.release(conn1, "main")
    with patch.object(pm, "_max_age", -1.0):
        conn2 = pm.get_connection("main")
    assert conn2 is not conn1
    assert conn1.closed is True


def test_stale_idle_connection_failing_ping_is_replaced() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conn1 = pm.get_connection("main")
    pm.release(conn1, "main")
    db.fail_query_on = "SELECT 1"
    with patch.object(pm, "_ping_idle", -1.0):
        conn2 = pm.get_connection("main")
    assert conn2 is not conn1
    assert conn1.closed is True


def test_open_unpooled_bypasses_pool() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db, pool_size=1)
    pm.get_connection("main")
    conn = pm.open_unpooled("main")
    assert conn is db.connections[1]
    assert pm.stats()["main"]["in_use_connections"] == 1


def test_dispose_closes_idle_connections() -> None:
    db = FakeDatabase()
    pm = make_pool_manager(db)
    conns = [pm.get_connection("main") for _ in range(3)]
    for c in conns:
        pm.release(c, "main")
    pm.dispose()
    assert all(c.closed for c in conns)
    assert pm.stats()["main"]["idle_connections"] == 0
