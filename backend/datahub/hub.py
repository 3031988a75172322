"""
Hub: CRUD and query dispatch over a shared connection or a bounded pool.

- Hub(provider, use_pool=False): one persistent connection reused for every
  operation (serialised by a lock, reopened from the provider if it breaks).
- Hub(provider, use_pool=True, pool_size=N): each operation borrows a pooled
  connection and releases it on every exit path.
- Hub.begin_tx() -> TxHub: a separate handle bound to a fresh connection from
  the provider (never the pool) with an open transaction. Its writes are only
  visible through it until commit(); rollback() discards them.

Every operation accepts an optional keyword ``timeout``: seconds to wait for a
pooled connection (None uses ``HubConfig.acquire_timeout``, 0 fails fast). It
has no effect on the shared connection or on a TxHub.

The pool never holds its lock across backend I/O. The non-pooled shared
connection is the exception: DB-API connections are not safe for concurrent
use, so its lock is held for the whole call.

Every operation raises a HubError subclass labelled with the operation name;
backend exceptions are chained, never swallowed, and never retried.

Closing a Hub while other threads are still running operations on it is not
synchronised; callers must stop using the hub first.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from datahub.core.config import HubConfig
from datahub.core.pool import ConnectionPool, close_quietly, is_duplicate_key
from datahub.errors import (
    DuplicateKeyError,
    ExecutionError,
    HubConnectionError,
    HubError,
    NotFoundError,
    TxNotSupportedError,
    TxStateError,
    rewrap,
)
from datahub.models import Record
from datahub.query import AggrOp, Command, CommandKind, QueryParam, aggr

_log = logging.getLogger(__name__)

Provider = Callable[[], Any]


def _table_of(target: Any) -> str:
    if isinstance(target, str):
        return target
    return target.table_name()


def _open(provider: Provider, op: str) -> Any:
    try:
        return provider()
    except Exception as e:
        raise HubConnectionError(op, e) from e


class _HubBase:
    """Operations shared by Hub and TxHub; subclasses decide where connections come from."""

    def _borrow(self, op: str, timeout: float | None = None) -> Any:
        raise NotImplementedError

    def _run(self, op: str, fn: Callable[[Any], Any], timeout: float | None = None) -> Any:
        try:
            with self._borrow(op, timeout) as conn:
                return fn(conn)
        except HubError as e:
            if e.op == op:
                raise
            raise rewrap(op, e) from e
        except Exception as e:
            if is_duplicate_key(e):
                raise DuplicateKeyError(op, e) from e
            raise ExecutionError(op, e) from e

    # -- writes -------------------------------------------------------------

    def insert(self, record: Record, *, timeout: float | None = None) -> None:
        """Insert *record* as a new row. DuplicateKeyError if its key exists."""
        cmd = Command(CommandKind.INSERT, record.table_name(), fields=record.to_fields())
        self._run("Insert", lambda conn: conn.execute(cmd), timeout)

    def update(self, record: Record, *, timeout: float | None = None) -> int:
        """
        Update the row with *record*'s key. Returns the number of rows updated;
        no matching row is not an error and returns 0.
        """
        cmd = Command(
            CommandKind.UPDATE,
            record.table_name(),
            fields=record.to_fields(),
            keys=record.key_map(),
        )
        return self._run("Update", lambda conn: conn.execute(cmd), timeout)

    def save(self, record: Record, *, timeout: float | None = None) -> None:
        """Insert *record*, or update it when its key already exists."""
        cmd = Command(
            CommandKind.SAVE,
            record.table_name(),
            fields=record.to_fields(),
            keys=record.key_map(),
        )
        self._run("Save", lambda conn: conn.execute(cmd), timeout)

    def delete(self, record: Record, *, timeout: float | None = None) -> int:
        """Delete the row with *record*'s key; returns the number of rows removed."""
        cmd = Command(CommandKind.DELETE, record.table_name(), keys=record.key_map())
        return self._run("Delete", lambda conn: conn.execute(cmd), timeout)

    def delete_query(
        self,
        target: Any,
        param: QueryParam | None,
        *,
        timeout: float | None = None,
    ) -> int:
        """
        Delete every row of *target*'s table matching ``param.where``.

        None (or a param without where) deletes ALL rows; pass
        ``QueryParam(where=match_none())`` to delete nothing.
        """
        cmd = Command(CommandKind.DELETE, _table_of(target), param=param)
        return self._run("DeleteQuery", lambda conn: conn.execute(cmd), timeout)

    # -- reads --------------------------------------------------------------

    def get(self, record: Record, *, timeout: float | None = None) -> Record:
        """Load the row with *record*'s key into *record*. NotFoundError if absent."""
        return self._get("Get", record, timeout)

    def get_by_id(self, record: Record, *keys: Any, timeout: float | None = None) -> Record:
        """Set *record*'s key to *keys*, then load it like ``get``."""
        record.set_id(*keys)
        return self._get("GetByID", record, timeout)

    def _get(self, op: str, record: Record, timeout: float | None) -> Record:
        table = record.table_name()
        keys = record.key_map()
        cmd = Command(CommandKind.SELECT, table, keys=keys, param=QueryParam(take=1))

        def _load(conn: Any) -> Record:
            rows = conn.fetch(cmd)
            if not rows:
                raise NotFoundError(op, f"no {table} record with key {keys}")
            record.load_fields(rows[0])
            return record

        return self._run(op, _load, timeout)

    def gets(
        self,
        template: Any,
        param: QueryParam | None,
        out: list | None = None,
        *,
        timeout: float | None = None,
    ) -> list:
        """
        Fetch every row of *template*'s table matching *param* (all rows when
        None) as records of the template's type. *out*, when given, has its
        contents replaced and is returned.
        """
        cls = template if isinstance(template, type) else type(template)
        cmd = Command(CommandKind.SELECT, cls.table_name(), param=param)
        rows = self._run("Gets", lambda conn: conn.fetch(cmd), timeout)
        records = [cls.from_fields(r) for r in rows]
        if out is None:
            return records
        out[:] = records
        return out

    def populate_by_parm(
        self,
        table: Any,
        param: QueryParam | None,
        out: list | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """
        Generic projection/aggregation query returning plain dict rows. With
        ``param.aggr`` set, one row per ``group_by`` group (a single row without).
        """
        cmd = Command(CommandKind.SELECT, _table_of(table), param=param)
        rows = self._run("PopulateByParm", lambda conn: conn.fetch(cmd), timeout)
        if out is None:
            return rows
        out[:] = rows
        return out

    def count(
        self,
        target: Any,
        param: QueryParam | None = None,
        *,
        timeout: float | None = None,
    ) -> int:
        where = param.where if param is not None else None
        counted = QueryParam(where=where).set_aggr(aggr("*", AggrOp.COUNT, "n"))
        cmd = Command(CommandKind.SELECT, _table_of(target), param=counted)
        rows = self._run("Count", lambda conn: conn.fetch(cmd), timeout)
        return int(rows[0]["n"]) if rows else 0


class Hub(_HubBase):
    """
    Data-access hub over a connection provider.

    - use_pool=False: ``pool_size`` is ignored; one connection is opened now.
    - use_pool=True: a pool of ``pool_size`` connections (``config.pool_size``
      when 0), ``config.pool_prewarm`` of them opened now.

    Failing to open the initial connection(s) raises HubConnectionError.
    """

    def __init__(
        self,
        provider: Provider,
        use_pool: bool = False,
        pool_size: int = 0,
        *,
        config: HubConfig | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or HubConfig.from_settings()
        self._pool: ConnectionPool | None = None
        self._conn: Any = None
        self._lock = threading.Lock()
        self._closed = False

        if use_pool:
            pool_size = pool_size or self._config.pool_size
            pool = ConnectionPool(
                provider,
                pool_size,
                acquire_timeout=self._config.acquire_timeout,
                max_age=self._config.max_age,
                ping_idle_threshold=self._config.ping_idle_threshold,
            )
            try:
                pool.prewarm(self._config.pool_prewarm)
            except HubError as e:
                pool.close_all()
                raise HubConnectionError("NewHub", e) from e
            self._pool = pool
        else:
            self._conn = _open(provider, "NewHub")
        _log.debug("hub ready (pooled=%s size=%s)", use_pool, pool_size if use_pool else 1)

    @property
    def pooled(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> ConnectionPool | None:
        return self._pool

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def _borrow(self, op: str, timeout: float | None = None) -> Iterator[Any]:
        if self._pool is not None:
            conn = self._pool.acquire(timeout)
            try:
                yield conn
            finally:
                self._pool.release(conn)
            return
        with self._lock:
            if self._closed:
                raise HubConnectionError(op, "hub is closed")
            if not self._conn.is_usable():
                _log.warning("shared connection %r is unusable, reopening", self._conn)
                close_quietly(self._conn)
                self._conn = _open(self._provider, op)
            yield self._conn

    def begin_tx(self) -> "TxHub":
        """
        Start a transaction on a dedicated connection and return its handle.
        Commit and/or Rollback need to be called on the handle to close it.
        """
        op = "BeginTransaction"
        if self._closed:
            raise HubConnectionError(op, "hub is closed")
        conn = _open(self._provider, op)
        if not conn.supports_tx():
            close_quietly(conn)
            raise TxNotSupportedError(op, "connection is not supporting transaction")
        try:
            conn.begin_tx()
        except Exception as e:
            close_quietly(conn)
            raise ExecutionError(op, e) from e
        _log.debug("transaction begun on %r", conn)
        return TxHub(conn)

    def close(self) -> None:
        """Release the persistent connection or close the pool. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._pool is not None:
            self._pool.close_all()
        else:
            with self._lock:
                conn, self._conn = self._conn, None
            if conn is not None:
                close_quietly(conn)

    def __enter__(self) -> "Hub":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def new_hub(
    provider: Provider,
    use_pool: bool = False,
    pool_size: int = 0,
    *,
    config: HubConfig | None = None,
) -> Hub:
    return Hub(provider, use_pool, pool_size, config=config)


class TxHub(_HubBase):
    """
    Transaction handle: Active until exactly one successful commit() or
    rollback(), Closed afterwards. Every call on a Closed handle raises
    TxStateError. The connection is never pooled; it is closed on finalize.

    As a context manager it commits on normal exit and rolls back on error.
    """

    def __init__(self, conn: Any) -> None:
        self._txconn = conn

    @property
    def active(self) -> bool:
        return self._txconn is not None

    @contextmanager
    def _borrow(self, op: str, timeout: float | None = None) -> Iterator[Any]:
        if self._txconn is None:
            raise TxStateError(op, "handler has no transactional connection")
        yield self._txconn

    def begin_tx(self) -> "TxHub":
        raise TxStateError("BeginTransaction", "handler is already transactional")

    def commit(self) -> None:
        """Commit all changes. On backend failure the handle stays Active."""
        conn = self._txconn
        if conn is None:
            raise TxStateError("Commit", "handler has no transactional connection")
        try:
            conn.commit()
        except Exception as e:
            raise ExecutionError("Commit", e) from e
        self._txconn = None
        close_quietly(conn)
        _log.debug("transaction committed on %r", conn)

    def rollback(self) -> None:
        """Revert all changes. The handle is Closed even if the backend call fails."""
        conn = self._txconn
        if conn is None:
            raise TxStateError("Rollback", "handler has no transactional connection")
        self._txconn = None
        try:
            conn.rollback()
        except Exception as e:
            raise ExecutionError("Rollback", e) from e
        finally:
            close_quietly(conn)
        _log.debug("transaction rolled back on %r", conn)

    def __enter__(self) -> "TxHub":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._txconn is None:
            return
        if exc_type is None:
            self.commit()
            return
        try:
            self.rollback()
        except HubError as e:
            _log.warning("rollback after %s failed: %s", exc_type.__name__, e)
