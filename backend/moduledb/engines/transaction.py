"""
Transaction lifecycle for one connection per handle.

    begin -> OPEN -> commit   -> COMMITTED   -> close -> CLOSED
                  -> rollback -> ROLLED_BACK -> close -> CLOSED

Nothing here raises to the caller (except transaction() when it cannot begin
or commit): failures are recorded in the ErrorLedger and reported as None / False.
A failed commit is compensated with a rollback; a connection whose rollback
failed is discarded instead of going back to its pool.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from moduledb.core.errors import (
    ConfigError,
    ErrorKind,
    ModuleDBError,
    PoolError,
    ResourceError,
    TransactionError,
)
from moduledb.core.ledger import ErrorLedger, ErrorRecord
from moduledb.core.pool import PoolManager
from moduledb.models import TransactionState

from .connection import Connection

_log = logging.getLogger(__name__)

_COMPONENT = "TransactionCoordinator"


class TransactionHandle:
    """Caller-held reference to a transaction bound to one Connection."""

    __slots__ = ("id", "module_name", "connection", "state")

    def __init__(self, connection: Connection) -> None:
        self.id = uuid.uuid4()
        self.module_name = connection.module_name
        self.connection = connection
        self.state = TransactionState.OPEN

    @property
    def is_usable(self) -> bool:
        return self.state != TransactionState.CLOSED and not self.connection.closed

    def __repr__(self) -> str:
        return f"<TransactionHandle {self.id} module={self.module_name} state={self.state.value}>"


class TransactionCoordinator:
    def __init__(self, pool_manager: PoolManager, ledger: ErrorLedger) -> None:
        self._pool_manager = pool_manager
        self._ledger = ledger

    def _record(self, error: BaseException, cause: Any = None) -> ErrorRecord:
        if cause is None and error.__cause__ is not None:
            cause = error.__cause__
        return self._ledger.populate_error(error, cause)

    def check_handle(self, handle: Any, operation: str) -> bool:
        """True if *handle* can still be used; otherwise record why not."""
        if not isinstance(handle, TransactionHandle):
            self._record(
                TransactionError(
                    f"Invalid transaction handle provided to {operation}: "
                    f"{type(handle).__name__}"
                )
            )
            return False
        if not handle.is_usable:
            self._record(
                TransactionError(f"Cannot {operation}: transaction {handle.id} is closed")
            )
            return False
        return True

    async def begin(self, module_name: str) -> TransactionHandle | None:
        try:
            connection = await Connection.acquire(self._pool_manager, module_name)
        except PoolError as e:
            self._record(e)
            return None
        try:
            await connection.begin_transaction()
        except TransactionError as e:
            rec = self._record(e)
            await self._close_connection(connection, discard=True, cause=rec)
            return None
        handle = TransactionHandle(connection)
        _log.debug("Began transaction %s on module %s", handle.id, module_name)
        return handle

    async def commit(self, handle: TransactionHandle, close_after: bool = True) -> bool:
        """
        Commit. On failure roll back as compensation and always close the
        connection; returns False. On success closes unless close_after=False.
        """
        if not self.check_handle(handle, "commit"):
            return False
        try:
            await handle.connection.commit()
        except TransactionError as e:
            rec = self._record(e)
            rolled_back = await self._compensate(handle.connection, rec)
            await self._close_handle(handle, discard=not rolled_back, cause=rec)
            return False
        handle.state = TransactionState.COMMITTED
        if close_after:
            await self._close_handle(handle)
        return True

    async def rollback(self, handle: TransactionHandle, close_after: bool = True) -> bool:
        """
        Roll back. A failed rollback forces the connection closed and discarded
        whatever close_after says.
        """
        if not self.check_handle(handle, "rollback"):
            return False
        try:
            await handle.connection.rollback()
        except TransactionError as e:
            rec = self._record(e)
            await self._close_handle(handle, discard=True, cause=rec)
            return False
        handle.state = TransactionState.ROLLED_BACK
        if close_after:
            await self._close_handle(handle)
        return True

    async def close(self, handle: TransactionHandle) -> bool:
        if not isinstance(handle, TransactionHandle):
            return self.check_handle(handle, "close")
        if not handle.is_usable:
            handle.state = TransactionState.CLOSED
            return True
        return await self._close_handle(handle)

    async def run_in_transaction(
        self,
        connection: Connection | None,
        callback: Callable[[Connection], Awaitable[Any]],
    ) -> Any:
        """
        begin -> await callback(connection) -> commit, or rollback when the
        callback raises. The connection is released on every path.
        Returns the callback's result, or None on any failure.
        """
        if not isinstance(connection, Connection):
            self._record(
                ConfigError(
                    "Tried to run a transaction without a connection (got "
                    f"{type(connection).__name__})",
                    component=_COMPONENT,
                )
            )
            return None
        discard = False
        try:
            try:
                await connection.begin_transaction()
            except (TransactionError, ResourceError) as e:
                self._record(e)
                discard = True
                return None
            try:
                result = await callback(connection)
            except Exception as e:
                if isinstance(e, ModuleDBError):
                    rec = self._record(e)
                else:
                    rec = self._ledger.populate_error(
                        e, component=_COMPONENT, kind=ErrorKind.TRANSACTION
                    )
                if not connection.closed:
                    discard = not await self._compensate(connection, rec)
                return None
            try:
                await connection.commit()
            except (TransactionError, ResourceError) as e:
                rec = self._record(e)
                # Closed by the callback: nothing left to roll back.
                if not connection.closed:
                    discard = not await self._compensate(connection, rec)
                return None
            return result
        finally:
            await self._close_connection(connection, discard=discard)

    @asynccontextmanager
    async def transaction(self, module_name: str) -> AsyncIterator[TransactionHandle]:
        """
        Scoped transaction: commit on normal exit, rollback when the body
        raises (the exception propagates), connection always closed.

        Raises TransactionError when the transaction cannot be started or the
        commit on normal exit fails; the details are in the ledger.
        """
        handle = await self.begin(module_name)
        if handle is None:
            raise TransactionError(
                f"Could not start transaction on module '{module_name}'"
            )
        try:
            yield handle
        except Exception:
            if handle.is_usable:
                await self.rollback(handle)
            raise
        else:
            if handle.state == TransactionState.OPEN and handle.is_usable:
                if not await self.commit(handle):
                    raise TransactionError(
                        f"Could not commit transaction {handle.id} on module '{module_name}'"
                    )
        finally:
            await self.close(handle)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _compensate(self, connection: Connection, cause: ErrorRecord) -> bool:
        """Roll back after a failed commit or callback; record a failure chained to *cause*."""
        try:
            await connection.rollback()
        except (TransactionError, ResourceError) as e:
            self._ledger.populate_error(e, cause)
            return False
        return True

    async def _close_handle(
        self,
        handle: TransactionHandle,
        *,
        discard: bool = False,
        cause: ErrorRecord | None = None,
    ) -> bool:
        try:
            return await self._close_connection(handle.connection, discard=discard, cause=cause)
        finally:
            handle.state = TransactionState.CLOSED

    async def _close_connection(
        self,
        connection: Connection,
        *,
        discard: bool = False,
        cause: ErrorRecord | None = None,
    ) -> bool:
        try:
            await connection.close(discard=discard)
        except ResourceError as e:
            self._ledger.populate_error(e, cause or e.__cause__)
            return False
        return True
