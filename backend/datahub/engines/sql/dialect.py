"""
Per-product SQL differences: identifier quoting, placeholders, paging, upsert.
"""

from typing import NamedTuple

from datahub.models import ProductTypeEnum


class Dialect(NamedTuple):
    name: str
    placeholder: str
    quote_char: str
    # "on_conflict" (Postgres, SQLite), "on_duplicate" (MySQL) or None (emulated)
    upsert: str | None
    offset_first: bool = False

    def quote(self, ident: str) -> str:
        if not ident:
            raise ValueError("empty identifier")
        q = self.quote_char
        return f"{q}{ident.replace(q, q + q)}{q}"

    def placeholders(self, n: int) -> str:
        return ", ".join([self.placeholder] * n)

    def paging(self, take: int, skip: int) -> str:
        if not take and not skip:
            return ""
        if self.offset_first:
            parts = []
            if skip:
                parts.append(f"OFFSET {int(skip)}")
            if take:
                parts.append(f"LIMIT {int(take)}")
            return " ".join(parts)
        if take:
            limit = f"LIMIT {int(take)}"
        elif self.name == "postgres":
            return f"OFFSET {int(skip)}"
        else:
            # MySQL and SQLite need a LIMIT before OFFSET
            limit = "LIMIT 18446744073709551615" if self.name == "mysql" else "LIMIT -1"
        return f"{limit} OFFSET {int(skip)}" if skip else limit


_DIALECTS: dict[ProductTypeEnum, Dialect] = {
    ProductTypeEnum.POSTGRES: Dialect("postgres", "%s", '"', "on_conflict"),
    ProductTypeEnum.MYSQL: Dialect("mysql", "%s", "`", "on_duplicate"),
    ProductTypeEnum.TRINO: Dialect("trino", "?", '"', None, offset_first=True),
    ProductTypeEnum.SQLITE: Dialect("sqlite", "?", '"', "on_conflict"),
}


def get_dialect(product_type: ProductTypeEnum | str) -> Dialect:
    pt = ProductTypeEnum(product_type) if isinstance(product_type, str) else product_type
    return _DIALECTS[pt]
