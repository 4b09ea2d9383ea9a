"""Runtime support for the modules generated by compile_types.

Generated modules only import from here: identifiers, change tracking, the lazy
scoped queries behind relation fields, and the thin DB-API wrapper used by the
generated create/update statements.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import uuid
from typing import Any, Generic, Optional, Sequence, TypeVar

TableName = TypeVar("TableName")
T = TypeVar("T")


class ConversionFailed(ValueError):
    pass


class UnexpectedNull(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class Id(Generic[TableName]):
    """Primary key value tagged with its table, so ids of different tables never compare equal."""

    table: str
    value: Any

    def __str__(self) -> str:
        return str(self.value)


def maybe_id(table: str, value: Any) -> Optional[Id]:
    if value is None:
        return None
    return Id(table, value)


@dataclasses.dataclass(frozen=True)
class MetaBag:
    touched_fields: tuple[str, ...] = ()

    def touch(self, field: str) -> MetaBag:
        # most recent first
        return MetaBag(touched_fields=(field,) + self.touched_fields)

    def is_touched(self, field: str) -> bool:
        return field in self.touched_fields


@dataclasses.dataclass(frozen=True)
class Plain:
    """Raw SQL spliced into a statement in place of a ``?`` placeholder."""

    sql: str


DEFAULT = Plain("DEFAULT")


def field_with_default(name: str, model: Any) -> Any:
    if model.meta.is_touched(name):
        return getattr(model, name)
    return DEFAULT


def field_with_update(name: str, model: Any) -> Any:
    """Value written by ``update_record``: the touched value if set, else the record's current value.

    Both are the field as held by the record, so callers never need to diff against the stored row.
    """
    return getattr(model, name)


def just(value: T) -> Optional[T]:
    """Present form of an optional value; widens the static type for comparisons on nullable columns."""
    return value


ZERO_VALUES: dict[Any, Any] = {
    int: 0,
    float: 0.0,
    str: "",
    bool: False,
    bytes: b"",
    decimal.Decimal: decimal.Decimal(0),
    uuid.UUID: uuid.UUID(int=0),
    datetime.datetime: datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc),
    datetime.date: datetime.date(1970, 1, 1),
    datetime.time: datetime.time(0, 0),
}


def default_value(python_type: Any) -> Any:
    if isinstance(python_type, type) and issubclass(python_type, enum.Enum):
        return python_type.default()
    try:
        return ZERO_VALUES[python_type]
    except KeyError:
        raise TypeError(f"No default value for {python_type!r}") from None


def enum_param_reader(enum_type: Any, raw: str | bytes | None) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return enum_type.from_field(raw)


def to_field(value: Any) -> Any:
    if isinstance(value, Id):
        return value.value
    if isinstance(value, enum.Enum) and hasattr(value, "to_field"):
        return value.to_field()
    return value


def render_query(sql: str, params: Sequence[Any] | None) -> tuple[str, list[Any]]:
    """Splice ``Plain`` parameters into the statement and convert the rest to storage values."""
    if params is None:
        return sql, []

    pieces = sql.split("?")
    if len(pieces) != len(params) + 1:
        raise ValueError(f"Statement expects {len(pieces) - 1} parameters, got {len(params)}: {sql}")

    out: list[str] = [pieces[0]]
    bound: list[Any] = []
    for value, piece in zip(params, pieces[1:]):
        if isinstance(value, Plain):
            out.append(value.sql)
        else:
            out.append("?")
            bound.append(to_field(value))
        out.append(piece)
    return "".join(out), bound


class ModelContext:
    """Wraps a DB-API 2 connection. Generated statements use qmark placeholders."""

    def __init__(self, connection: Any, paramstyle: str = "qmark"):
        if paramstyle not in ("qmark", "format"):
            raise ValueError(f"Unsupported paramstyle: {paramstyle}")
        self.connection = connection
        self.paramstyle = paramstyle

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[Any]:
        sql, bound = render_query(sql, params)
        if self.paramstyle == "format":
            sql = sql.replace("?", "%s")
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, bound)
            return list(cursor.fetchall())
        finally:
            cursor.close()


@dataclasses.dataclass(frozen=True)
class QueryBuilder(Generic[T]):
    """Unevaluated query over a generated model; nothing runs until ``fetch``."""

    model: Any
    conditions: tuple[tuple[str, Any], ...] = ()

    def filter_where(self, column: str, value: Any) -> QueryBuilder[T]:
        return QueryBuilder(self.model, self.conditions + ((column, value),))

    def to_sql(self) -> tuple[str, list[Any]]:
        sql = f"SELECT * FROM {self.model.__table_name__}"
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in self.conditions:
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return sql, params

    def fetch(self, model_context: ModelContext) -> list[T]:
        sql, params = self.to_sql()
        return [self.model.from_row(row) for row in model_context.query(sql, params)]


def fetch_related(model: Any, field: str, model_context: ModelContext, models_by_table: dict[str, Any]) -> Any:
    """Return a copy of ``model`` with one relation or belongs-to field replaced by the loaded records."""
    value = getattr(model, field)
    if isinstance(value, QueryBuilder):
        loaded: Any = value.fetch(model_context)
    elif isinstance(value, Id):
        related = models_by_table[value.table]
        rows = model_context.query(
            f"SELECT * FROM {value.table} WHERE {related.__primary_key__} = ? LIMIT 1",
            [value],
        )
        if not rows:
            raise LookupError(f"No {value.table} row with {related.__primary_key__} = {value}")
        loaded = related.from_row(rows[0])
    elif value is None:
        loaded = None
    else:
        raise TypeError(f"{type(model).__name__}.{field} is not a relation field")
    return dataclasses.replace(model, **{field: loaded})
