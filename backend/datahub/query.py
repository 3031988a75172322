"""
Query specification values and the commands the hub sends to a connection.

QueryParam and Filter are frozen: builder methods return new values, so a
specification handed to the hub is passed through unchanged.

    param = QueryParam().set_where(and_(gte("ref1", 6), lte("ref1", 10))).set_aggr(
        aggr("ref1", AggrOp.SUM)
    )
"""

from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class FilterOp(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    CONTAINS = "contains"
    AND = "and"
    OR = "or"
    NOT = "not"
    NONE = "none"  # matches no row


class Filter(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: FilterOp
    field: str | None = None
    value: Any = None
    items: tuple["Filter", ...] = ()


Filter.model_rebuild()


def _cmp(op: FilterOp, field: str, value: Any) -> Filter:
    return Filter(op=op, field=field, value=value)


def eq(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.EQ, field, value)


def ne(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.NE, field, value)


def gt(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.GT, field, value)


def gte(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.GTE, field, value)


def lt(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.LT, field, value)


def lte(field: str, value: Any) -> Filter:
    return _cmp(FilterOp.LTE, field, value)


def in_(field: str, values: Any) -> Filter:
    return _cmp(FilterOp.IN, field, tuple(values))


def nin(field: str, values: Any) -> Filter:
    return _cmp(FilterOp.NIN, field, tuple(values))


def contains(field: str, text: str) -> Filter:
    return _cmp(FilterOp.CONTAINS, field, text)


def and_(*items: Filter) -> Filter:
    return Filter(op=FilterOp.AND, items=items)


def or_(*items: Filter) -> Filter:
    return Filter(op=FilterOp.OR, items=items)


def not_(item: Filter) -> Filter:
    return Filter(op=FilterOp.NOT, items=(item,))


def range_(field: str, low: Any, high: Any) -> Filter:
    """Inclusive on both bounds."""
    return and_(gte(field, low), lte(field, high))


def match_none() -> Filter:
    return Filter(op=FilterOp.NONE)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class AggrOp(str, Enum):
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class AggrItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: AggrOp
    alias: str | None = None

    @property
    def name(self) -> str:
        return self.alias or self.field


def aggr(field: str, op: AggrOp, alias: str | None = None) -> AggrItem:
    """``field="*"`` is only meaningful with COUNT."""
    return AggrItem(field=field, op=op, alias=alias)


# ---------------------------------------------------------------------------
# QueryParam
# ---------------------------------------------------------------------------


class QueryParam(BaseModel):
    """
    Filter/sort/paging/aggregation descriptor.

    - where: None matches every row (use ``match_none()`` to match nothing)
    - sort: field names, ``-name`` for descending
    - take / skip: 0 means no limit / no offset
    - aggr + group_by: one output row per group (a single row without group_by)
    """

    model_config = ConfigDict(frozen=True)

    where: Filter | None = None
    sort: tuple[str, ...] = ()
    take: int = Field(default=0, ge=0)
    skip: int = Field(default=0, ge=0)
    select: tuple[str, ...] = ()
    aggr: tuple[AggrItem, ...] = ()
    group_by: tuple[str, ...] = ()

    def set_where(self, where: Filter | None) -> "QueryParam":
        return self.model_copy(update={"where": where})

    def set_sort(self, *fields: str) -> "QueryParam":
        return self.model_copy(update={"sort": fields})

    def set_take(self, take: int) -> "QueryParam":
        if take < 0:
            raise ValueError("take must be >= 0")
        return self.model_copy(update={"take": take})

    def set_skip(self, skip: int) -> "QueryParam":
        if skip < 0:
            raise ValueError("skip must be >= 0")
        return self.model_copy(update={"skip": skip})

    def set_select(self, *fields: str) -> "QueryParam":
        return self.model_copy(update={"select": fields})

    def set_aggr(self, *items: AggrItem) -> "QueryParam":
        return self.model_copy(update={"aggr": items})

    def set_group_by(self, *fields: str) -> "QueryParam":
        return self.model_copy(update={"group_by": fields})


# ---------------------------------------------------------------------------
# Commands (hub -> connection)
# ---------------------------------------------------------------------------


class CommandKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SAVE = "save"
    DELETE = "delete"
    SELECT = "select"


class Command(NamedTuple):
    """
    One unit of work for the storage engine.

    ``keys`` (column -> value) addresses a single row for point operations;
    ``param`` carries the filter for SELECT and DELETE. Both may be combined.
    """

    kind: CommandKind
    table: str
    fields: dict[str, Any] | None = None
    keys: dict[str, Any] | None = None
    param: QueryParam | None = None
