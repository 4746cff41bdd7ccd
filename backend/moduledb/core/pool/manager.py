"""
Connection pools for configured modules.

One pool per module name, created when the manager is built. Reuses idle
connections with health-check on checkout and max-age eviction. A pool never
hands out more than its size: exhaustion raises PoolError instead of waiting.
"""

import logging
import threading
import time
from typing import Any, Callable, NamedTuple

from moduledb.core.config import settings
from moduledb.core.errors import PoolError
from moduledb.models import ModuleConfig

from .connect import connect as _connect
from .connect import rollback as _rollback
from .health import health_check

_log = logging.getLogger(__name__)


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when the connection was opened
    last_used: float   # time.monotonic() when last returned to pool


class _ModulePool:
    __slots__ = ("config", "size", "idle", "in_use")

    def __init__(self, config: ModuleConfig, size: int) -> None:
        self.config = config
        self.size = size
        self.idle: list[_PoolEntry] = []
        # id(conn) -> created_at
        self.in_use: dict[int, float] = {}


class PoolManager:
    """Per-module connection pools with health-check, max-age and a size cap."""

    def __init__(
        self,
        modules: dict[str, ModuleConfig],
        *,
        pool_size: int | None = None,
        connect: Callable[[ModuleConfig], Any] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._connect = connect or _connect
        self._max_age: float = float(settings.POOL_MAX_AGE_SEC)
        self._ping_idle: float = float(settings.POOL_PING_IDLE_SEC)
        default_size = pool_size or settings.POOL_SIZE
        self._pools: dict[str, _ModulePool] = {
            name: _ModulePool(cfg, cfg.pool_size or default_size)
            for name, cfg in modules.items()
        }

    @property
    def module_names(self) -> list[str]:
        return list(self._pools)

    def config(self, module_name: str) -> ModuleConfig:
        return self._pool(module_name).config

    def get_connection(self, module_name: str) -> Any:
        """Get a healthy connection for *module_name* (from pool or freshly opened)."""
        pool = self._pool(module_name)
        product_type = pool.config.product_type
        now = time.monotonic()
        while True:
            entry = self._checkout_idle(pool)
            if entry is None:
                break
            if self._is_expired(entry):
                self._drop(pool, entry.conn)
                continue
            idle_sec = now - entry.last_used
            if idle_sec > self._ping_idle and not health_check(entry.conn, product_type):
                self._drop(pool, entry.conn)
                continue
            _log.debug("Reusing pooled connection for module %s", module_name)
            return entry.conn

        # No idle connection: reserve a slot before opening so concurrent
        # callers cannot exceed the pool size.
        with self._lock:
            if len(pool.in_use) >= pool.size:
                raise PoolError(
                    f"Connection pool exhausted for module '{module_name}' "
                    f"({pool.size} connections in use)"
                )
            slot = object()
            pool.in_use[id(slot)] = now
        try:
            conn = self._connect(pool.config)
        except Exception as e:
            with self._lock:
                pool.in_use.pop(id(slot), None)
            raise PoolError(
                f"Error connecting to database for module '{module_name}': {e}"
            ) from e
        with self._lock:
            pool.in_use.pop(id(slot), None)
            pool.in_use[id(conn)] = now
        _log.debug("Opened new connection for module %s", module_name)
        return conn

    def open_unpooled(self, module_name: str) -> Any:
        """Open a one-off connection that bypasses the pool (closed by the caller)."""
        pool = self._pool(module_name)
        try:
            return self._connect(pool.config)
        except Exception as e:
            raise PoolError(
                f"Error connecting to database for module '{module_name}': {e}"
            ) from e

    def release(self, conn: Any, module_name: str) -> None:
        """Return a connection to the pool (or close it if pool is full)."""
        pool = self._pool(module_name)
        try:
            _rollback(conn, pool.config.product_type)
        except Exception:
            self.discard(conn, module_name)
            return

        with self._lock:
            created_at = pool.in_use.pop(id(conn), None)
            if created_at is not None and len(pool.idle) < pool.size:
                pool.idle.append(
                    _PoolEntry(conn=conn, created_at=created_at, last_used=time.monotonic())
                )
                return

        self._close_quiet(conn)

    def discard(self, conn: Any, module_name: str) -> None:
        """Close a checked-out connection instead of returning it to the pool."""
        pool = self._pool(module_name)
        self._drop(pool, conn)

    def dispose(self, module_name: str | None = None) -> None:
        """Close idle pooled connections. ``None`` = all pools."""
        with self._lock:
            if module_name is not None:
                pools = [self._pools[module_name]] if module_name in self._pools else []
            else:
                pools = list(self._pools.values())
            entries = []
            for pool in pools:
                entries.extend(pool.idle)
                pool.idle = []
        for e in entries:
            self._close_quiet(e.conn)
        _log.info("Disposed %d idle connection(s)", len(entries))

    def stats(self) -> dict[str, dict[str, int]]:
        """Return per-module pool statistics for monitoring."""
        with self._lock:
            return {
                name: {
                    "size": pool.size,
                    "idle_connections": len(pool.idle),
                    "in_use_connections": len(pool.in_use),
                }
                for name, pool in self._pools.items()
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pool(self, module_name: str) -> _ModulePool:
        if not module_name or not isinstance(module_name, str):
            raise PoolError(f"Invalid module name {module_name!r} provided")
        pool = self._pools.get(module_name)
        if pool is None:
            raise PoolError(f"Unknown module '{module_name}'")
        return pool

    def _checkout_idle(self, pool: _ModulePool) -> _PoolEntry | None:
        with self._lock:
            if pool.idle:
                entry = pool.idle.pop()
                pool.in_use[id(entry.conn)] = entry.created_at
                return entry
        return None

    def _is_expired(self, entry: _PoolEntry) -> bool:
        return (time.monotonic() - entry.created_at) > self._max_age

    def _drop(self, pool: _ModulePool, conn: Any) -> None:
        with self._lock:
            pool.in_use.pop(id(conn), None)
        self._close_quiet(conn)

    @staticmethod
    def _close_quiet(conn: Any) -> None:
        try:
            conn.close()
        except Exception:
            _log.debug("Ignoring error while closing connection", exc_info=True)
