"""
Error taxonomy for the hub.

Every error carries an ``ErrorKind`` so callers can branch on ``err.kind``
instead of parsing messages, plus the name of the failing operation. The
message keeps the ``fail <Op>: <cause>`` shape; the underlying exception is
chained as ``__cause__``.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of hub failure."""

    CONNECTION = "connection"
    POOL_EXHAUSTED = "pool_exhausted"
    POOL_CLOSED = "pool_closed"
    TX_NOT_SUPPORTED = "tx_not_supported"
    TX_STATE = "tx_state"
    NOT_FOUND = "not_found"
    DUPLICATE_KEY = "duplicate_key"
    EXECUTION = "execution"


class HubError(Exception):
    """Base class. ``op`` is the operation name, ``cause`` the wrapped reason."""

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(self, op: str, cause: object) -> None:
        self.op = op
        self.cause = cause
        super().__init__(f"fail {op}: {cause}")


class HubConnectionError(HubError):
    """The connection provider failed to produce a usable connection."""

    kind = ErrorKind.CONNECTION


class PoolExhaustedError(HubError):
    """No connection became available before the acquire deadline."""

    kind = ErrorKind.POOL_EXHAUSTED


class PoolClosedError(HubError):
    kind = ErrorKind.POOL_CLOSED


class TxNotSupportedError(HubError):
    kind = ErrorKind.TX_NOT_SUPPORTED


class TxStateError(HubError):
    """Transaction call out of order: no bound connection, or already finalized."""

    kind = ErrorKind.TX_STATE


class NotFoundError(HubError):
    kind = ErrorKind.NOT_FOUND


class DuplicateKeyError(HubError):
    kind = ErrorKind.DUPLICATE_KEY


class ExecutionError(HubError):
    """The backend rejected a command or query."""

    kind = ErrorKind.EXECUTION


def rewrap(op: str, exc: HubError) -> HubError:
    """Same kind of error, re-labelled with the outer operation name."""
    return type(exc)(op, exc)
