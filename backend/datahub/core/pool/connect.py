"""
Backend connections.

Uses psycopg (PostgreSQL), pymysql (MySQL), trino (Trino) or sqlite3 (SQLite
files) based on product_type. Every connection is opened in autocommit mode so
that each hub call outside a transaction is its own unit of work; DbConnection
wraps the DB-API connection with the capabilities the hub consumes.
"""

import logging
import sqlite3
from collections.abc import Callable
from typing import Any

import psycopg
import pymysql
from pymysql.constants import CLIENT
from trino.auth import BasicAuthentication
from trino.dbapi import connect as trino_connect

from datahub.core.config import settings
from datahub.engines.sql import compile_command, get_dialect
from datahub.models import DataSource, ProductTypeEnum
from datahub.query import Command, CommandKind

_log = logging.getLogger(__name__)


def _get(datasource: Any, key: str) -> Any:
    """Get attribute or dict key from DataSource, dict, or Pydantic model."""
    if isinstance(datasource, dict):
        return datasource.get(key)
    return getattr(datasource, key, None)


def _resolve_product_type(
    datasource: Any, product_type: ProductTypeEnum | None
) -> ProductTypeEnum:
    pt = product_type or _get(datasource, "product_type")
    if pt is None:
        raise ValueError("product_type is required (from datasource or argument)")
    if isinstance(pt, str):
        return ProductTypeEnum(pt)
    return pt


def execute(conn: Any, sql: str, params: list | tuple | dict | None = None) -> Any:
    """Execute SQL on a raw DB-API connection and return the cursor (closed on error)."""
    cur = conn.cursor()
    try:
        if params:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    except Exception:
        close_quietly(cur)
        raise
    return cur


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts. Works for every supported driver."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]


def close_quietly(obj: Any) -> None:
    try:
        obj.close()
    except Exception as e:
        _log.debug("close failed: %s", e)


def is_duplicate_key(exc: BaseException) -> bool:
    """True when *exc* is a unique/primary key violation from any supported driver."""
    if isinstance(exc, psycopg.errors.UniqueViolation):
        return True
    if isinstance(exc, pymysql.err.IntegrityError):
        return bool(exc.args) and exc.args[0] == 1062
    if isinstance(exc, sqlite3.IntegrityError):
        return "UNIQUE constraint failed" in str(exc)
    return False


class DbConnection:
    """
    DB-API connection plus the capabilities the hub needs: execute a command,
    fetch rows for a query, transaction control and a usability check.
    """

    def __init__(self, raw: Any, product_type: ProductTypeEnum) -> None:
        self.raw = raw
        self.product_type = product_type
        self.dialect = get_dialect(product_type)
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<DbConnection {self.product_type.value} {state}>"

    # -- commands ---------------------------------------------------------

    def execute(self, command: Command) -> int:
        """Run a write command and return the affected row count."""
        if command.kind is CommandKind.SAVE and self.dialect.upsert is None:
            return self._save_emulated(command)
        sql, params = compile_command(command, self.dialect)
        cur = execute(self.raw, sql, params)
        try:
            rc = cur.rowcount
            return rc if rc is not None and rc > 0 else 0
        finally:
            close_quietly(cur)

    def fetch(self, command: Command) -> list[dict[str, Any]]:
        """Run a SELECT command and return every row as a dict."""
        sql, params = compile_command(command, self.dialect)
        cur = execute(self.raw, sql, params)
        try:
            return cursor_to_dicts(cur)
        finally:
            close_quietly(cur)

    def _save_emulated(self, command: Command) -> int:
        n = self.execute(command._replace(kind=CommandKind.UPDATE))
        if n:
            return n
        return self.execute(command._replace(kind=CommandKind.INSERT))

    # -- transactions -----------------------------------------------------

    def supports_tx(self) -> bool:
        return self.product_type is not ProductTypeEnum.TRINO

    def begin_tx(self) -> None:
        if self.product_type is ProductTypeEnum.POSTGRES:
            # next statement opens the transaction
            self.raw.autocommit = False
        elif self.product_type is ProductTypeEnum.MYSQL:
            self.raw.begin()
        elif self.product_type is ProductTypeEnum.SQLITE:
            self.raw.execute("BEGIN")
        else:
            raise NotImplementedError(f"{self.product_type.value} has no transactions")

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    # -- lifecycle --------------------------------------------------------

    def ping(self) -> None:
        cur = execute(self.raw, "SELECT 1")
        try:
            cur.fetchall()
        finally:
            close_quietly(cur)

    def is_usable(self) -> bool:
        """Cheap local check (no I/O): False once closed or broken by the driver."""
        if self._closed:
            return False
        if self.product_type is ProductTypeEnum.POSTGRES:
            return not self.raw.closed and not self.raw.broken
        if self.product_type is ProductTypeEnum.MYSQL:
            return bool(self.raw.open)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.raw.close()


def _apply_statement_timeout(raw: Any, pt: ProductTypeEnum, timeout_sec: int) -> None:
    # SET does not take bound parameters on Postgres; the value is an int
    timeout_ms = int(timeout_sec * 1000)
    if pt == ProductTypeEnum.POSTGRES:
        cur = execute(raw, f"SET statement_timeout = {timeout_ms}")
    elif pt == ProductTypeEnum.MYSQL:
        cur = execute(raw, f"SET SESSION max_execution_time = {timeout_ms}")
    else:
        return
    close_quietly(cur)


def connect(
    datasource: Any,
    *,
    product_type: ProductTypeEnum | None = None,
    connect_timeout: int | None = None,
    statement_timeout: int | None = None,
) -> DbConnection:
    """
    Open a connection from a DataSource or connection dict.

    - datasource: DataSource model or dict with host, port, database, username,
      password and product_type (or pass product_type=). SQLite only needs database.
    - connect_timeout / statement_timeout: seconds; default to settings.
    """
    pt = _resolve_product_type(datasource, product_type)
    timeout = connect_timeout if connect_timeout is not None else settings.CONNECT_TIMEOUT
    stmt_timeout = (
        statement_timeout if statement_timeout is not None else settings.STATEMENT_TIMEOUT
    )
    database = _get(datasource, "database")
    if database is None:
        raise ValueError("datasource must provide database")

    if pt == ProductTypeEnum.SQLITE:
        raw = sqlite3.connect(
            database,
            timeout=float(stmt_timeout or timeout),
            isolation_level=None,
            check_same_thread=False,
        )
        raw.execute("PRAGMA journal_mode=WAL")
        return DbConnection(raw, pt)

    host = _get(datasource, "host")
    port = _get(datasource, "port")
    username = _get(datasource, "username")
    password = _get(datasource, "password")
    for name, val in [("host", host), ("username", username)]:
        if val is None:
            raise ValueError(f"datasource must provide {name}")
    password = password if password is not None else ""

    if pt == ProductTypeEnum.POSTGRES:
        raw = psycopg.connect(
            host=host,
            port=int(port or 5432),
            dbname=database,
            user=username,
            password=password,
            connect_timeout=timeout,
            autocommit=True,
        )
    elif pt == ProductTypeEnum.MYSQL:
        raw = pymysql.connect(
            host=host,
            port=int(port or 3306),
            database=database,
            user=username,
            password=password,
            connect_timeout=timeout,
            autocommit=True,
            client_flag=CLIENT.FOUND_ROWS,
        )
    elif pt == ProductTypeEnum.TRINO:
        use_ssl = _get(datasource, "use_ssl") in (True, "true", "1")
        if use_ssl and not (password and password.strip()):
            raise ValueError("Password is required for Trino when using SSL/HTTPS.")
        session_properties = (
            {"query_max_execution_time": f"{stmt_timeout}s"} if stmt_timeout else None
        )
        raw = trino_connect(
            host=host,
            port=int(port or 8080),
            user=username,
            auth=BasicAuthentication(username, password) if use_ssl else None,
            catalog=database,
            schema="default",
            source="datahub",
            http_scheme="https" if use_ssl else "http",
            request_timeout=timeout,
            session_properties=session_properties,
        )
    else:
        raise ValueError(f"Unsupported product_type: {pt}")

    if stmt_timeout:
        try:
            _apply_statement_timeout(raw, pt, stmt_timeout)
        except Exception:
            close_quietly(raw)
            raise
    return DbConnection(raw, pt)


def make_provider(
    datasource: DataSource | dict,
    *,
    connect_timeout: int | None = None,
    statement_timeout: int | None = None,
) -> Callable[[], DbConnection]:
    """Connection provider for a Hub: each call opens a fresh connection."""

    def provider() -> DbConnection:
        return connect(
            datasource,
            connect_timeout=connect_timeout,
            statement_timeout=statement_timeout,
        )

    return provider
