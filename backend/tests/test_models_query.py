"""Unit tests for Record/ModelRecord, QueryParam values and the error taxonomy."""

import pytest
from pydantic import ValidationError

from datahub.errors import ErrorKind, ExecutionError, NotFoundError, PoolExhaustedError, rewrap
from datahub.query import QueryParam, eq, gte
from tests.utils.dummy import DUMMY_TABLE, Dummy, new_dummy


class TestModelRecord:
    def test_fields_use_column_aliases(self) -> None:
        d = new_dummy(3)
        assert Dummy.table_name() == DUMMY_TABLE
        assert d.to_fields() == {"_id": "User-3", "name": "Employee 3", "ref1": 3, "ref2": 0}
        assert d.key_values() == ("User-3",)
        assert d.key_map() == {"_id": "User-3"}

    def test_set_id(self) -> None:
        d = Dummy()
        d.set_id("User-9")
        assert d.id == "User-9"
        with pytest.raises(ValueError):
            d.set_id("a", "b")

    def test_load_fields_overwrites_in_place(self) -> None:
        d = new_dummy(1)
        d.load_fields({"_id": "User-1", "name": "Loaded", "ref2": "7", "extra": 1})
        assert d.name == "Loaded"
        assert d.ref2 == 7
        assert d.ref1 == 1

    def test_from_fields(self) -> None:
        d = Dummy.from_fields({"_id": "User-2", "name": "n", "ref1": 2, "ref2": 4})
        assert isinstance(d, Dummy)
        assert (d.id, d.ref2) == ("User-2", 4)

    def test_key_map_requires_key(self) -> None:
        with pytest.raises(ValueError, match="key is not set"):
            Dummy().key_map()


class TestQueryParam:
    def test_frozen(self) -> None:
        p = QueryParam(where=eq("a", 1))
        with pytest.raises(ValidationError):
            p.take = 3  # type: ignore[misc]

    def test_builders_return_new_values(self) -> None:
        base = QueryParam()
        p = base.set_where(gte("ref1", 2)).set_take(4).set_sort("-ref1")
        assert base == QueryParam()
        assert p.where == gte("ref1", 2)
        assert (p.take, p.sort) == (4, ("-ref1",))

    def test_negative_paging_rejected(self) -> None:
        with pytest.raises(ValueError):
            QueryParam().set_take(-1)
        with pytest.raises(ValidationError):
            QueryParam(skip=-2)


class TestErrors:
    def test_message_and_kind(self) -> None:
        e = NotFoundError("Get", "no row")
        assert str(e) == "fail Get: no row"
        assert e.kind is ErrorKind.NOT_FOUND
        assert (e.op, e.cause) == ("Get", "no row")

    def test_rewrap_keeps_kind(self) -> None:
        inner = PoolExhaustedError("Acquire", "all 2 connection(s) are in use")
        outer = rewrap("Insert", inner)
        assert isinstance(outer, PoolExhaustedError)
        assert outer.kind is ErrorKind.POOL_EXHAUSTED
        assert str(outer) == "fail Insert: fail Acquire: all 2 connection(s) are in use"

    def test_default_kind_is_execution(self) -> None:
        assert ExecutionError("Save", RuntimeError("x")).kind is ErrorKind.EXECUTION
