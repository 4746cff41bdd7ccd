"""
Execute statements against a module, single or as an all-or-nothing batch.

- query_db: one statement, on a caller's transaction or on a private
  connection that is released afterwards.
- query_db_multiple: ordered batch inside a private transaction; the first
  failing statement aborts and rolls back the whole batch.

Results are list[dict] (result sets) or int (affected rows); None means the
call failed and the ledger holds the reason.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from moduledb.core.errors import (
    ConfigError,
    PoolError,
    QueryError,
    ResourceError,
)
from moduledb.core.ledger import ErrorLedger
from moduledb.core.pool import PoolManager

from .connection import Connection
from .transaction import TransactionCoordinator, TransactionHandle

_log = logging.getLogger(__name__)

_COMPONENT = "QueryExecutor"

Statement = tuple[str, Any]


def _parse_statements(statements: Any) -> list[Statement]:
    """
    Normalise a batch into (sql, values) pairs.

    Entries are {"sql": ..., "values": ...} mappings or bare SQL strings.
    Raises ConfigError on anything else.
    """
    if isinstance(statements, (str, bytes)) or not isinstance(statements, Sequence):
        raise ConfigError(
            f"Invalid statement list provided: {type(statements).__name__}",
            component=_COMPONENT,
        )
    parsed: list[Statement] = []
    for i, item in enumerate(statements):
        if isinstance(item, str) and item.strip():
            parsed.append((item, None))
            continue
        if isinstance(item, Mapping):
            sql = item.get("sql")
            if isinstance(sql, str) and sql.strip():
                parsed.append((sql, item.get("values")))
                continue
        raise ConfigError(
            f"Invalid statement at index {i}: expected SQL text or a mapping with 'sql'",
            component=_COMPONENT,
        )
    return parsed


class QueryExecutor:
    def __init__(
        self,
        pool_manager: PoolManager,
        ledger: ErrorLedger,
        coordinator: TransactionCoordinator,
    ) -> None:
        self._pool_manager = pool_manager
        self._ledger = ledger
        self._coordinator = coordinator

    def _record(self, error: BaseException) -> None:
        self._ledger.populate_error(error, error.__cause__)

    def _validate(self, sql: Any, module_name: Any) -> bool:
        if not isinstance(sql, str) or not sql.strip():
            self._record(
                ConfigError(f"Invalid query {sql!r} provided", component=_COMPONENT)
            )
            return False
        if not isinstance(module_name, str) or not module_name:
            self._record(
                ConfigError(
                    f"Invalid module name {module_name!r} provided", component=_COMPONENT
                )
            )
            return False
        return True

    async def query_db(
        self,
        sql: str | None,
        module_name: str | None,
        values: dict | list | tuple | None = None,
        transaction: TransactionHandle | None = None,
    ) -> list[dict[str, Any]] | int | None:
        if not self._validate(sql, module_name):
            return None

        if transaction is not None:
            # Caller owns the connection: run on it, never close it here.
            if not self._coordinator.check_handle(transaction, "query"):
                return None
            if transaction.module_name != module_name:
                self._record(
                    ConfigError(
                        f"Module name '{module_name}' does not match transaction "
                        f"{transaction.id} on module '{transaction.module_name}'",
                        component=_COMPONENT,
                    )
                )
                return None
            try:
                return await transaction.connection.query(sql, values)
            except (QueryError, ResourceError) as e:
                self._record(e)
                return None

        try:
            connection = await Connection.acquire(self._pool_manager, module_name)
        except PoolError as e:
            self._record(e)
            return None
        try:
            return await connection.query(sql, values)
        except QueryError as e:
            self._record(e)
            return None
        finally:
            try:
                await connection.close()
            except ResourceError as e:
                self._record(e)

    async def query_db_multiple(
        self,
        statements: Sequence[Mapping[str, Any] | str] | None,
        module_name: str | None,
    ) -> list[list[dict[str, Any]] | int] | None:
        if not isinstance(module_name, str) or not module_name:
            self._record(
                ConfigError(
                    f"Invalid module name {module_name!r} provided", component=_COMPONENT
                )
            )
            return None
        try:
            batch = _parse_statements(statements)
        except ConfigError as e:
            self._record(e)
            return None
        if not batch:
            return []

        try:
            connection = await Connection.acquire(self._pool_manager, module_name)
        except PoolError as e:
            self._record(e)
            return None

        async def _run_batch(conn: Connection) -> list[list[dict[str, Any]] | int]:
            results: list[list[dict[str, Any]] | int] = []
            for sql, values in batch:
                results.append(await conn.query(sql, values))
            return results

        out = await self._coordinator.run_in_transaction(connection, _run_batch)
        if out is not None:
            _log.debug("Batch of %d statement(s) committed on module %s", len(batch), module_name)
        return out
