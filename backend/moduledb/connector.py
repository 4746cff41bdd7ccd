"""
Multi-module database connector.

Takes a mapping of module name -> connection config, builds one pool per
module and exposes query / batch / transaction operations. Failures do not
raise: they come back as None / False and are recorded in the connector's own
ErrorLedger (get_error / get_last_error / reset_error).

    connector = DatabaseConnector({"main": {"host": "localhost", ...}})
    if not await connector.init():
        print(connector.get_error())
    rows = await connector.query_db("SELECT * FROM test", "main")
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from moduledb.core.config import settings
from moduledb.core.errors import ConfigError, ErrorKind, PoolError, ResourceError
from moduledb.core.ledger import ErrorLedger, ErrorRecord
from moduledb.core.pool import PoolManager, health_check
from moduledb.engines import (
    Connection,
    QueryExecutor,
    TransactionCoordinator,
    TransactionHandle,
)
from moduledb.models import ModuleConfig, parse_module_configs

_log = logging.getLogger(__name__)

_INIT_REQUIRED_MSG = (
    "Database connector init not completed. Cannot execute query. "
    "Please run init() after instantiating the database connector"
)


class DatabaseConnector:
    def __init__(
        self,
        modules: Mapping[str, ModuleConfig | Mapping[str, Any]] | None = None,
        *,
        require_init_before_query: bool | None = None,
        pool_manager: PoolManager | None = None,
    ) -> None:
        """
        Args:
            modules: module name -> ModuleConfig (or a dict with the same keys).
                Invalid entries raise pydantic.ValidationError here.
            require_init_before_query: reject queries until init() succeeded.
                Defaults to settings.REQUIRE_INIT_BEFORE_QUERY.
            pool_manager: pre-built pools; by default one is created for ``modules``.
        """
        self.modules: dict[str, ModuleConfig] = parse_module_configs(modules or {})
        self.require_init_before_query = (
            settings.REQUIRE_INIT_BEFORE_QUERY
            if require_init_before_query is None
            else require_init_before_query
        )
        self.is_init_complete = False
        self._ledger = ErrorLedger()
        self._pool_manager = pool_manager or PoolManager(self.modules)
        self._coordinator = TransactionCoordinator(self._pool_manager, self._ledger)
        self._executor = QueryExecutor(self._pool_manager, self._ledger, self._coordinator)

    @property
    def pool_manager(self) -> PoolManager:
        return self._pool_manager

    # ------------------------------------------------------------------
    # Init / health
    # ------------------------------------------------------------------

    async def init(self) -> bool:
        """
        Check that every module can hand out a working connection (acquire,
        SELECT 1, release). Records one error per failing module and returns
        True only if all of them passed.
        """
        ok = True
        for module_name in self.modules:
            if not await self._check_module(module_name):
                ok = False
        self.is_init_complete = ok
        if ok:
            _log.info("Database connector ready (%d module(s))", len(self.modules))
        else:
            _log.info("Database connector init failed; see get_error()")
        return ok

    async def _check_module(self, module_name: str) -> bool:
        try:
            connection = await Connection.acquire(self._pool_manager, module_name)
        except PoolError as e:
            self._ledger.populate_error(e, e.__cause__)
            return False
        product_type = self.modules[module_name].product_type
        alive = await asyncio.to_thread(health_check, connection.raw, product_type)
        try:
            await connection.close(discard=not alive)
        except ResourceError as e:
            self._ledger.populate_error(e, e.__cause__)
            return False
        if not alive:
            self._ledger.populate_error(
                PoolError(f"Health check failed for module '{module_name}'")
            )
        return alive

    def _check_init(self) -> bool:
        if self.require_init_before_query and not self.is_init_complete:
            self._ledger.populate_error(ConfigError(_INIT_REQUIRED_MSG))
            return False
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query_db(
        self,
        sql: str | None,
        module_name: str | None,
        values: dict | list | tuple | None = None,
        transaction: TransactionHandle | None = None,
    ) -> list[dict[str, Any]] | int | None:
        """
        Run one statement. With *transaction* it runs on that transaction's
        connection (left open); otherwise on a private connection that is
        released afterwards. Returns None on failure.
        """
        if not self._check_init():
            return None
        return await self._executor.query_db(sql, module_name, values, transaction)

    async def query_db_multiple(
        self,
        statements: Sequence[Mapping[str, Any] | str] | None,
        module_name: str | None,
    ) -> list[list[dict[str, Any]] | int] | None:
        """
        Run [{"sql": ..., "values": ...}, ...] in order inside one transaction.
        All-or-nothing: any failure rolls back and returns None.
        """
        if not self._check_init():
            return None
        return await self._executor.query_db_multiple(statements, module_name)

    async def connect_db(self, module_name: str | None) -> Connection | None:
        """Acquire a connection for use with query_with_transaction()."""
        if not isinstance(module_name, str) or not module_name:
            self._ledger.populate_error(
                ConfigError(f"Invalid module name {module_name!r} provided")
            )
            return None
        try:
            return await Connection.acquire(self._pool_manager, module_name)
        except PoolError as e:
            self._ledger.populate_error(e, e.__cause__)
            return None

    async def query_with_transaction(
        self,
        connection: Connection | None,
        callback: Callable[[Connection], Awaitable[Any]],
    ) -> Any:
        """
        begin -> await callback(connection) -> commit (rollback if it raised).
        The connection is always released. Returns the callback's result or None.
        """
        if not self._check_init():
            if isinstance(connection, Connection):
                try:
                    await connection.close()
                except ResourceError as e:
                    self._ledger.populate_error(e, e.__cause__)
            return None
        return await self._coordinator.run_in_transaction(connection, callback)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def begin_transaction(self, module_name: str | None) -> TransactionHandle | None:
        if not self._check_init():
            return None
        if not isinstance(module_name, str) or not module_name:
            self._ledger.populate_error(
                ConfigError(f"Invalid module name {module_name!r} provided")
            )
            return None
        return await self._coordinator.begin(module_name)

    async def commit_transaction(
        self, transaction: TransactionHandle, close_after: bool = True
    ) -> bool:
        """
        close_after=True releases the connection after the commit;
        False leaves it with the caller for further work (close it later).
        """
        return await self._coordinator.commit(transaction, close_after)

    async def roll_back_transaction(
        self, transaction: TransactionHandle, close_after: bool = True
    ) -> bool:
        """Same close_after contract as commit_transaction(); a failed rollback always closes."""
        return await self._coordinator.rollback(transaction, close_after)

    async def close_transaction(self, transaction: TransactionHandle) -> bool:
        return await self._coordinator.close(transaction)

    @asynccontextmanager
    async def transaction(self, module_name: str) -> AsyncIterator[TransactionHandle]:
        """
        async with connector.transaction("main") as tx:
            await connector.query_db("INSERT ...", "main", transaction=tx)

        Commits on normal exit, rolls back if the body raises. Raises
        ConfigError / TransactionError when no transaction could be started, and
        TransactionError when the commit on normal exit fails.
        """
        if not self._check_init():
            raise ConfigError(_INIT_REQUIRED_MSG)
        async with self._coordinator.transaction(module_name) as handle:
            yield handle

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def populate_error(
        self,
        primary: Any,
        cause: Any = None,
        reset: bool = False,
        *,
        component: str | None = None,
        kind: ErrorKind | None = None,
    ) -> ErrorRecord:
        return self._ledger.populate_error(
            primary, cause, reset, component=component, kind=kind
        )

    def get_error(self) -> list[ErrorRecord]:
        return self._ledger.get_error()

    def get_last_error(self) -> ErrorRecord | None:
        return self._ledger.get_last_error()

    def reset_error(self) -> None:
        self._ledger.reset_error()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def dispose(self) -> None:
        """Close every idle pooled connection."""
        await asyncio.to_thread(self._pool_manager.dispose)
