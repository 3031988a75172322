"""
Backend connections and the bounded connection pool.

No driver layer: psycopg, pymysql and trino are installed via pip, sqlite3 ships
with Python; a DataSource (product_type, host, ...) is enough to connect.
"""

from .connect import (
    DbConnection,
    close_quietly,
    connect,
    cursor_to_dicts,
    execute,
    is_duplicate_key,
    make_provider,
)
from .health import health_check
from .manager import ConnectionPool

__all__ = [
    "DbConnection",
    "connect",
    "make_provider",
    "execute",
    "cursor_to_dicts",
    "close_quietly",
    "is_duplicate_key",
    "health_check",
    "ConnectionPool",
]
