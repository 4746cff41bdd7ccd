from .connection import Connection
from .executor import QueryExecutor
from .transaction import TransactionCoordinator, TransactionHandle

__all__ = [
    "Connection",
    "QueryExecutor",
    "TransactionCoordinator",
    "TransactionHandle",
]
