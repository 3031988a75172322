"""
Datahub models.

- ProductTypeEnum / DataSource: what a connection provider needs to open a
  backend connection.
- Record: the capability interface every domain type implements to plug into
  the hub (table identity, key values, field mapping in both directions).
- ModelRecord: a pydantic implementation of Record driven by two class
  attributes, ``table_id`` and ``key_columns``.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProductTypeEnum(str, Enum):
    """Supported database product types (postgres, mysql, trino, sqlite)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    TRINO = "trino"
    SQLITE = "sqlite"


# ---------------------------------------------------------------------------
# DataSource - Connection parameters
# ---------------------------------------------------------------------------


class DataSource(BaseModel):
    """Connection parameters. For SQLite, ``database`` is the file path."""

    name: str = Field(default="default", max_length=255)
    product_type: ProductTypeEnum
    host: str | None = None
    port: int | None = None
    database: str
    username: str | None = None
    password: str | None = None
    use_ssl: bool = False


# ---------------------------------------------------------------------------
# Record capability
# ---------------------------------------------------------------------------


class Record(ABC):
    """A domain object the hub can insert, load, update and delete."""

    @classmethod
    @abstractmethod
    def table_name(cls) -> str: ...

    @classmethod
    @abstractmethod
    def key_fields(cls) -> tuple[str, ...]: ...

    @abstractmethod
    def key_values(self) -> tuple[Any, ...]: ...

    @abstractmethod
    def set_id(self, *keys: Any) -> None: ...

    @abstractmethod
    def to_fields(self) -> dict[str, Any]:
        """Column name -> value for every persisted field."""

    @abstractmethod
    def load_fields(self, fields: dict[str, Any]) -> None:
        """Overwrite this record in place from a column name -> value mapping."""

    @classmethod
    @abstractmethod
    def from_fields(cls, fields: dict[str, Any]) -> "Record": ...

    def key_map(self) -> dict[str, Any]:
        """Key column -> value. Raises ValueError unless every key is set."""
        names = self.key_fields()
        values = self.key_values()
        if not names or len(names) != len(values):
            raise ValueError(f"{type(self).__name__}: key fields and values do not match")
        if any(v is None or v == "" for v in values):
            raise ValueError(f"{type(self).__name__}: key is not set ({dict(zip(names, values))})")
        return dict(zip(names, values))


class ModelRecord(BaseModel, Record):
    """
    Record backed by a pydantic model. Column names are field aliases when set,
    field names otherwise::

        class Employee(ModelRecord):
            table_id: ClassVar[str] = "employee"
            key_columns: ClassVar[tuple[str, ...]] = ("_id",)

            id: str = Field(default="", alias="_id")
            name: str = ""
    """

    model_config = ConfigDict(populate_by_name=True)

    table_id: ClassVar[str] = ""
    key_columns: ClassVar[tuple[str, ...]] = ("_id",)

    @classmethod
    def table_name(cls) -> str:
        return cls.table_id or cls.__name__

    @classmethod
    def key_fields(cls) -> tuple[str, ...]:
        return cls.key_columns

    def key_values(self) -> tuple[Any, ...]:
        fields = self.to_fields()
        return tuple(fields.get(k) for k in self.key_columns)

    def set_id(self, *keys: Any) -> None:
        if len(keys) != len(self.key_columns):
            raise ValueError(
                f"{type(self).__name__} expects {len(self.key_columns)} key value(s), got {len(keys)}"
            )
        self.load_fields(dict(zip(self.key_columns, keys)))

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def load_fields(self, fields: dict[str, Any]) -> None:
        fresh = self.model_validate({**self.to_fields(), **fields})
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))

    @classmethod
    def from_fields(cls, fields: dict[str, Any]) -> "ModelRecord":
        return cls.model_validate(fields)
