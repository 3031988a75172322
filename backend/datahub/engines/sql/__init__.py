"""
SQL storage engine: compiles hub commands for Postgres, MySQL, Trino and SQLite.

Exports: Dialect, get_dialect, compile_command, compile_filter.
"""

from datahub.engines.sql.compiler import compile_command, compile_filter
from datahub.engines.sql.dialect import Dialect, get_dialect

__all__ = [
    "Dialect",
    "get_dialect",
    "compile_command",
    "compile_filter",
]
