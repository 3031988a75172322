"""
Storage engines the hub delegates to. Only SQL for now.
"""

from datahub.engines.sql import compile_command, get_dialect

__all__ = [
    "compile_command",
    "get_dialect",
]
