"""
moduledb: pooled, transactional access to several named database modules.
"""

from moduledb.connector import DatabaseConnector
from moduledb.core.errors import (
    ConfigError,
    ErrorKind,
    ModuleDBError,
    PoolError,
    QueryError,
    ResourceError,
    TransactionError,
)
from moduledb.core.ledger import ErrorLedger, ErrorRecord
from moduledb.engines import Connection, TransactionHandle
from moduledb.models import (
    ModuleConfig,
    ProductTypeEnum,
    TLSMaterial,
    TransactionState,
    parse_module_configs,
)

__all__ = [
    "Connection",
    "ConfigError",
    "DatabaseConnector",
    "ErrorKind",
    "ErrorLedger",
    "ErrorRecord",
    "ModuleConfig",
    "ModuleDBError",
    "PoolError",
    "ProductTypeEnum",
    "QueryError",
    "ResourceError",
    "TLSMaterial",
    "TransactionError",
    "TransactionHandle",
    "TransactionState",
    "parse_module_configs",
]
