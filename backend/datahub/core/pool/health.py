"""
Connection health check.
"""

import logging
from typing import Any

_log = logging.getLogger(__name__)


def health_check(conn: Any) -> bool:
    """
    Run SELECT 1 through the connection and return True if no exception.
    Every supported backend (Postgres, MySQL, Trino, SQLite) accepts SELECT 1.
    """
    if not conn.is_usable():
        return False
    try:
        conn.ping()
        return True
    except Exception as e:
        _log.debug("health_check failed for %r: %s", conn, e)
        return False
