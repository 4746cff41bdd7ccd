"""
Async facade over one raw DB-API connection.

The same five operations (query, begin_transaction, commit, rollback, close)
whether the connection came from a module pool or was opened one-off.
Blocking driver calls run in a worker thread via asyncio.to_thread.
"""

import asyncio
import logging
from typing import Any

from moduledb.core.errors import QueryError, ResourceError, TransactionError
from moduledb.core.pool import PoolManager
from moduledb.core.pool import begin as _begin
from moduledb.core.pool import commit as _commit
from moduledb.core.pool import rollback as _rollback
from moduledb.core.pool import run_statement

_log = logging.getLogger(__name__)


class Connection:
    """One acquired connection. Owned by a single logical operation until close()."""

    def __init__(
        self,
        raw: Any,
        module_name: str,
        pool_manager: PoolManager,
        *,
        pooled: bool = True,
    ) -> None:
        self.raw = raw
        self.module_name = module_name
        self.pooled = pooled
        self._pool_manager = pool_manager
        self._product_type = pool_manager.config(module_name).product_type
        self._closed = False

    @classmethod
    async def acquire(cls, pool_manager: PoolManager, module_name: str) -> "Connection":
        """Check out a connection for *module_name*. Raises PoolError."""
        pooled = pool_manager.config(module_name).use_pool
        if pooled:
            raw = await asyncio.to_thread(pool_manager.get_connection, module_name)
        else:
            raw = await asyncio.to_thread(pool_manager.open_unpooled, module_name)
        return cls(raw, module_name, pool_manager, pooled=pooled)

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise ResourceError(
                f"Cannot {operation}: connection for module '{self.module_name}' is closed"
            )

    async def query(
        self, sql: str, values: dict | list | tuple | None = None
    ) -> list[dict[str, Any]] | int:
        self._ensure_open("query")
        _log.debug("Executing on module %s: %s", self.module_name, sql[:100])
        try:
            return await asyncio.to_thread(
                run_statement, self.raw, sql, values, product_type=self._product_type
            )
        except Exception as e:
            raise QueryError(f"Query failed on module '{self.module_name}': {e}") from e

    async def begin_transaction(self) -> None:
        self._ensure_open("begin transaction")
        try:
            await asyncio.to_thread(_begin, self.raw, self._product_type)
        except Exception as e:
            raise TransactionError(
                f"Could not begin transaction on module '{self.module_name}': {e}"
            ) from e

    async def commit(self) -> None:
        self._ensure_open("commit")
        try:
            await asyncio.to_thread(_commit, self.raw, self._product_type)
        except Exception as e:
            raise TransactionError(
                f"Could not commit transaction on module '{self.module_name}': {e}"
            ) from e

    async def rollback(self) -> None:
        self._ensure_open("rollback")
        try:
            await asyncio.to_thread(_rollback, self.raw, self._product_type)
        except Exception as e:
            raise TransactionError(
                f"Could not roll back transaction on module '{self.module_name}': {e}"
            ) from e

    async def close(self, *, discard: bool = False) -> None:
        """
        Release the connection: back to its pool, or fully disconnected when it
        is one-off or *discard* is set. A second call is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if not self.pooled:
                await asyncio.to_thread(self.raw.close)
            elif discard:
                await asyncio.to_thread(
                    self._pool_manager.discard, self.raw, self.module_name
                )
            else:
                await asyncio.to_thread(
                    self._pool_manager.release, self.raw, self.module_name
                )
        except Exception as e:
            raise ResourceError(
                f"Could not release connection for module '{self.module_name}': {e}"
            ) from e
