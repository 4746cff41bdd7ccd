"""
Error taxonomy shared by the pool, connection and transaction layers.

Layers below the connector raise these; the connector turns every one of
them into an ErrorRecord in its ledger instead of letting it escape.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CONFIG = "config"
    POOL = "pool"
    QUERY = "query"
    TRANSACTION = "transaction"
    RESOURCE = "resource"
    # error input that is none of str / exception / ErrorRecord
    MALFORMED = "malformed"


class ModuleDBError(Exception):
    """Base class. ``kind`` and ``component`` tag the resulting ErrorRecord."""

    kind: ErrorKind = ErrorKind.RESOURCE
    component: str = "DatabaseConnector"

    def __init__(self, message: str, *, component: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if component is not None:
            self.component = component


class ConfigError(ModuleDBError, ValueError):
    """Missing or invalid module name, SQL text or batch entry."""

    kind = ErrorKind.CONFIG


class PoolError(ModuleDBError):
    """Acquire failed: unknown module, pool exhausted or connection refused."""

    kind = ErrorKind.POOL
    component = "ConnectionPool"


class QueryError(ModuleDBError):
    """Statement execution failed."""

    kind = ErrorKind.QUERY
    component = "Connection"


class TransactionError(ModuleDBError):
    """begin / commit / rollback failed, or the handle is no longer usable."""

    kind = ErrorKind.TRANSACTION
    component = "TransactionCoordinator"


class ResourceError(ModuleDBError):
    """Close / release of a connection failed, or the connection is closed."""

    kind = ErrorKind.RESOURCE
    component = "Connection"
