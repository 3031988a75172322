"""
datahub: connection-scoped data-access hub.

Hub mediates reads/writes against a storage backend through either one
persistent connection or a bounded pool, and begin_tx() hands out isolated
transaction handles (TxHub).
"""

from datahub.core.config import HubConfig, Settings, settings
from datahub.core.pool import ConnectionPool, DbConnection, connect, make_provider
from datahub.errors import (
    DuplicateKeyError,
    ErrorKind,
    ExecutionError,
    HubConnectionError,
    HubError,
    NotFoundError,
    PoolClosedError,
    PoolExhaustedError,
    TxNotSupportedError,
    TxStateError,
)
from datahub.hub import Hub, TxHub, new_hub
from datahub.models import DataSource, ModelRecord, ProductTypeEnum, Record
from datahub.query import (
    AggrItem,
    AggrOp,
    Filter,
    FilterOp,
    QueryParam,
    aggr,
    and_,
    contains,
    eq,
    gt,
    gte,
    in_,
    lt,
    lte,
    match_none,
    ne,
    nin,
    not_,
    or_,
    range_,
)

__all__ = [
    "Hub",
    "TxHub",
    "new_hub",
    "HubConfig",
    "Settings",
    "settings",
    "ConnectionPool",
    "DbConnection",
    "connect",
    "make_provider",
    "DataSource",
    "ProductTypeEnum",
    "Record",
    "ModelRecord",
    "QueryParam",
    "Filter",
    "FilterOp",
    "AggrItem",
    "AggrOp",
    "aggr",
    "eq",
    "ne",
    "gt",
    "gte",
    "lt",
    "lte",
    "in_",
    "nin",
    "contains",
    "and_",
    "or_",
    "not_",
    "range_",
    "match_none",
    "ErrorKind",
    "HubError",
    "HubConnectionError",
    "PoolExhaustedError",
    "PoolClosedError",
    "TxNotSupportedError",
    "TxStateError",
    "NotFoundError",
    "DuplicateKeyError",
    "ExecutionError",
]
