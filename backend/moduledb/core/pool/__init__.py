"""
DB connections and per-module connection pools.

No driver layer of our own: pymysql and psycopg do the wire work; a
ModuleConfig (product_type, host, ...) is enough to open a connection.
"""

from .connect import (
    begin,
    commit,
    connect,
    cursor_to_dicts,
    execute,
    rollback,
    run_statement,
)
from .health import health_check
from .manager import PoolManager

__all__ = [
    "begin",
    "commit",
    "connect",
    "cursor_to_dicts",
    "execute",
    "health_check",
    "rollback",
    "run_statement",
    "PoolManager",
]
