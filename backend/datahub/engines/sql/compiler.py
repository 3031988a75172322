"""
Compile hub commands to parameterised SQL.

compile_command(command, dialect) -> (sql, params). Values are always bound
as parameters; only identifiers (quoted by the dialect) and integer paging
values are inlined.
"""

from typing import Any

from datahub.query import AggrOp, Command, CommandKind, Filter, FilterOp, QueryParam, eq

from .dialect import Dialect

_COMPARE = {
    FilterOp.EQ: "=",
    FilterOp.NE: "<>",
    FilterOp.GT: ">",
    FilterOp.GTE: ">=",
    FilterOp.LT: "<",
    FilterOp.LTE: "<=",
}

_TRUE = "1 = 1"
_FALSE = "1 = 0"


def compile_filter(f: Filter, d: Dialect, params: list[Any]) -> str:
    """Render *f* as a boolean SQL expression, appending bound values to *params*."""
    op = f.op
    if op is FilterOp.NONE:
        return _FALSE
    if op in (FilterOp.AND, FilterOp.OR):
        parts = [compile_filter(i, d, params) for i in f.items]
        if not parts:
            return _TRUE if op is FilterOp.AND else _FALSE
        joiner = " AND " if op is FilterOp.AND else " OR "
        return "(" + joiner.join(parts) + ")"
    if op is FilterOp.NOT:
        if len(f.items) != 1:
            raise ValueError("NOT filter takes exactly one item")
        return f"NOT ({compile_filter(f.items[0], d, params)})"

    if not f.field:
        raise ValueError(f"filter {op.value} requires a field")
    col = d.quote(f.field)
    if op in (FilterOp.IN, FilterOp.NIN):
        values = list(f.value or ())
        if not values:
            return _FALSE if op is FilterOp.IN else _TRUE
        params.extend(values)
        neg = "NOT " if op is FilterOp.NIN else ""
        return f"{col} {neg}IN ({d.placeholders(len(values))})"
    if op is FilterOp.CONTAINS:
        params.append(f"%{f.value}%")
        return f"{col} LIKE {d.placeholder}"
    if f.value is None and op in (FilterOp.EQ, FilterOp.NE):
        return f"{col} IS NULL" if op is FilterOp.EQ else f"{col} IS NOT NULL"
    params.append(f.value)
    return f"{col} {_COMPARE[op]} {d.placeholder}"


def _where(cmd: Command, d: Dialect, params: list[Any]) -> str:
    filters: list[Filter] = [eq(k, v) for k, v in (cmd.keys or {}).items()]
    if cmd.param is not None and cmd.param.where is not None:
        filters.append(cmd.param.where)
    if not filters:
        return ""
    parts = [compile_filter(f, d, params) for f in filters]
    return " WHERE " + " AND ".join(parts)


def _require_fields(cmd: Command) -> dict[str, Any]:
    if not cmd.fields:
        raise ValueError(f"{cmd.kind.value} on {cmd.table} has no fields")
    return cmd.fields


def _require_keys(cmd: Command) -> dict[str, Any]:
    if not cmd.keys:
        raise ValueError(f"{cmd.kind.value} on {cmd.table} has no key")
    return cmd.keys


def _insert(cmd: Command, d: Dialect) -> tuple[str, list[Any]]:
    fields = _require_fields(cmd)
    cols = ", ".join(d.quote(c) for c in fields)
    sql = f"INSERT INTO {d.quote(cmd.table)} ({cols}) VALUES ({d.placeholders(len(fields))})"
    return sql, list(fields.values())


def _update(cmd: Command, d: Dialect) -> tuple[str, list[Any]]:
    fields = _require_fields(cmd)
    keys = _require_keys(cmd)
    values = {c: v for c, v in fields.items() if c not in keys} or dict(keys)
    sets = ", ".join(f"{d.quote(c)} = {d.placeholder}" for c in values)
    params: list[Any] = list(values.values())
    sql = f"UPDATE {d.quote(cmd.table)} SET {sets}" + _where(cmd._replace(param=None), d, params)
    return sql, params


def _upsert(cmd: Command, d: Dialect) -> tuple[str, list[Any]]:
    fields = _require_fields(cmd)
    keys = _require_keys(cmd)
    if d.upsert is None:
        raise ValueError(f"{d.name} has no native upsert")
    sql, params = _insert(cmd, d)
    others = [c for c in fields if c not in keys]
    if d.upsert == "on_conflict":
        target = ", ".join(d.quote(k) for k in keys)
        if others:
            sets = ", ".join(f"{d.quote(c)} = EXCLUDED.{d.quote(c)}" for c in others)
            return f"{sql} ON CONFLICT ({target}) DO UPDATE SET {sets}", params
        return f"{sql} ON CONFLICT ({target}) DO NOTHING", params
    cols = others or list(keys)
    sets = ", ".join(f"{d.quote(c)} = VALUES({d.quote(c)})" for c in cols)
    return f"{sql} ON DUPLICATE KEY UPDATE {sets}", params


def _delete(cmd: Command, d: Dialect) -> tuple[str, list[Any]]:
    params: list[Any] = []
    sql = f"DELETE FROM {d.quote(cmd.table)}" + _where(cmd, d, params)
    return sql, params


def _aggr_expr(field: str, op: AggrOp, alias: str, d: Dialect) -> str:
    if field == "*":
        if op is not AggrOp.COUNT:
            raise ValueError(f"{op.value}(*) is not supported")
        target = "*"
    else:
        target = d.quote(field)
    return f"{op.value.upper()}({target}) AS {d.quote(alias)}"


def _select(cmd: Command, d: Dialect) -> tuple[str, list[Any]]:
    p = cmd.param or QueryParam()
    params: list[Any] = []
    if p.aggr:
        cols = [d.quote(g) for g in p.group_by]
        cols += [_aggr_expr(a.field, a.op, a.name, d) for a in p.aggr]
    elif p.select:
        cols = [d.quote(c) for c in p.select]
    else:
        cols = ["*"]
    sql = f"SELECT {', '.join(cols)} FROM {d.quote(cmd.table)}" + _where(cmd, d, params)
    if p.aggr and p.group_by:
        sql += " GROUP BY " + ", ".join(d.quote(g) for g in p.group_by)
    if p.sort:
        order = [
            f"{d.quote(s[1:])} DESC" if s.startswith("-") else f"{d.quote(s)} ASC"
            for s in p.sort
        ]
        sql += " ORDER BY " + ", ".join(order)
    paging = d.paging(p.take, p.skip)
    if paging:
        sql += " " + paging
    return sql, params


_COMPILERS = {
    CommandKind.INSERT: _insert,
    CommandKind.UPDATE: _update,
    CommandKind.SAVE: _upsert,
    CommandKind.DELETE: _delete,
    CommandKind.SELECT: _select,
}


def compile_command(cmd: Command, dialect: Dialect) -> tuple[str, list[Any]]:
    return _COMPILERS[cmd.kind](cmd, dialect)
