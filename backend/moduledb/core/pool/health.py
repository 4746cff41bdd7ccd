"""
Liveness ping for module connections, used on pool checkout and by init().
"""

import logging
from typing import Any

from moduledb.models import ProductTypeEnum

from .connect import run_statement

_log = logging.getLogger(__name__)


def health_check(conn: Any, product_type: ProductTypeEnum) -> bool:
    """
    Run SELECT 1 and return True if it yields a row. MySQL and Postgres both support SELECT 1.
    """
    try:
        rows = run_statement(conn, "SELECT 1", product_type=product_type)
    except Exception as e:
        _log.debug("Health check failed: %s", e)
        return False
    return bool(rows)
