"""
DB connection helpers for configured modules.

Uses pymysql (MySQL) or psycopg (PostgreSQL) based on ModuleConfig.product_type.
Connections are opened in autocommit mode; explicit transactions are started
with begin() and ended with commit() / rollback().
"""

import logging
import ssl
from typing import Any

import psycopg
import pymysql

from moduledb.core.config import settings
from moduledb.models import ModuleConfig, ProductTypeEnum, TLSMaterial

_log = logging.getLogger(__name__)


def _mysql_ssl(opt: bool | TLSMaterial) -> ssl.SSLContext | None:
    if opt is False:
        return None
    if opt is True:
        return ssl.create_default_context()
    ctx = ssl.create_default_context(cafile=opt.ca)
    if opt.cert:
        ctx.load_cert_chain(certfile=opt.cert, keyfile=opt.key)
    return ctx


def _postgres_ssl(opt: bool | TLSMaterial) -> dict[str, str]:
    if opt is False:
        return {}
    if opt is True:
        return {"sslmode": "require"}
    kwargs = {"sslmode": "verify-full" if opt.ca else "require"}
    if opt.ca:
        kwargs["sslrootcert"] = opt.ca
    if opt.cert:
        kwargs["sslcert"] = opt.cert
    if opt.key:
        kwargs["sslkey"] = opt.key
    return kwargs


def connect(module: ModuleConfig) -> Any:
    """Open a new autocommit DB-API connection for *module*."""
    timeout = settings.CONNECT_TIMEOUT
    password = module.password.get_secret_value()

    if module.product_type == ProductTypeEnum.POSTGRES:
        return psycopg.connect(
            host=module.host,
            port=int(module.port),
            dbname=module.database,
            user=module.user,
            password=password,
            connect_timeout=timeout,
            autocommit=True,
            **_postgres_ssl(module.ssl),
        )
    if module.product_type == ProductTypeEnum.MYSQL:
        return pymysql.connect(
            host=module.host,
            port=int(module.port),
            database=module.database,
            user=module.user,
            password=password,
            connect_timeout=timeout,
            autocommit=True,
            ssl=_mysql_ssl(module.ssl),
        )
    raise ValueError(f"Unsupported product_type: {module.product_type}")


def execute(
    conn: Any,
    sql: str,
    params: dict | list | tuple | None = None,
    *,
    product_type: ProductTypeEnum | None = None,
) -> Any:
    """
    Execute SQL and return the cursor. Caller uses cursor_to_dicts(cursor) or cursor.rowcount.

    - product_type: used for STATEMENT_TIMEOUT (Postgres: statement_timeout,
      MySQL: max_execution_time). When set, applies timeout in ms before the query and resets after.
    """
    timeout_sec = settings.STATEMENT_TIMEOUT
    use_timeout = timeout_sec is not None and timeout_sec > 0 and product_type is not None

    if use_timeout:
        timeout_ms = int(timeout_sec * 1000)
        cur_set = conn.cursor()
        try:
            if product_type == ProductTypeEnum.POSTGRES:
                cur_set.execute(f"SET statement_timeout = {timeout_ms}")
            elif product_type == ProductTypeEnum.MYSQL:
                cur_set.execute(f"SET SESSION max_execution_time = {timeout_ms}")
        finally:
            cur_set.close()

    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    except Exception:
        cur.close()
        raise
    finally:
        if use_timeout:
            _reset_timeout(conn, product_type)

    return cur


def _reset_timeout(conn: Any, product_type: ProductTypeEnum) -> None:
    # A failed reset must not mask the statement's own outcome; on Postgres it
    # fails whenever the statement aborted the surrounding transaction.
    try:
        cur_reset = conn.cursor()
        try:
            if product_type == ProductTypeEnum.POSTGRES:
                cur_reset.execute("SET statement_timeout = 0")
            elif product_type == ProductTypeEnum.MYSQL:
                cur_reset.execute("SET SESSION max_execution_time = 0")
        finally:
            cur_reset.close()
    except Exception:
        _log.debug("Ignoring error while resetting statement timeout", exc_info=True)


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts. Works for both psycopg and pymysql."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]


def run_statement(
    conn: Any,
    sql: str,
    params: dict | list | tuple | None = None,
    *,
    product_type: ProductTypeEnum | None = None,
) -> list[dict[str, Any]] | int:
    """
    Execute one statement and materialise its result.

    Returns list[dict] when the statement produced a result set, otherwise the
    affected row count.
    """
    cur = execute(conn, sql, params, product_type=product_type)
    try:
        if cur.description:
            return cursor_to_dicts(cur)
        return cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else 0
    finally:
        cur.close()


def begin(conn: Any, product_type: ProductTypeEnum) -> None:
    if product_type == ProductTypeEnum.MYSQL:
        conn.begin()
        return
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
    finally:
        cur.close()


def commit(conn: Any, product_type: ProductTypeEnum) -> None:
    if product_type == ProductTypeEnum.MYSQL:
        conn.commit()
        return
    cur = conn.cursor()
    try:
        cur.execute("COMMIT")
    finally:
        cur.close()


def rollback(conn: Any, product_type: ProductTypeEnum) -> None:
    if product_type == ProductTypeEnum.MYSQL:
        conn.rollback()
        return
    cur = conn.cursor()
    try:
        cur.execute("ROLLBACK")
    finally:
        cur.close()
