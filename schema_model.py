"""Schema statements consumed by the type compiler, plus the YAML schema source that produces them.

A schema document is a mapping with a ``statements`` list, kept in declaration order:

    statements:
      - create_enum: {name: post_status, values: [draft, published]}
      - create_table:
          name: posts
          columns:
            - {name: id, type: UUID, primary_key: true, default: uuid_generate_v4()}
            - {name: user_id, type: UUID, not_null: true}
      - add_constraint:
          table: posts
          foreign_key: {column: user_id, references: users}
"""

from __future__ import annotations

import dataclasses
import enum
import re
from pathlib import Path
from typing import Any, Iterable, Union

try:
    import yaml
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required. Install with: pip install pyyaml") from exc


class SchemaParseError(ValueError):
    pass


class TypeKind(enum.Enum):
    INT = "INT"
    BIGINT = "BIGINT"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP_WITH_TIMEZONE = "TIMESTAMP WITH TIME ZONE"
    TIMESTAMP = "TIMESTAMP"
    UUID = "UUID"
    REAL = "REAL"
    DOUBLE = "DOUBLE PRECISION"
    DATE = "DATE"
    TIME = "TIME"
    NUMERIC = "NUMERIC"
    VARYING = "CHARACTER VARYING"
    CHARACTER = "CHARACTER"
    BINARY = "BYTEA"
    SERIAL = "SERIAL"
    BIGSERIAL = "BIGSERIAL"
    CUSTOM = "CUSTOM"


@dataclasses.dataclass(frozen=True)
class ColumnType:
    kind: TypeKind
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    custom_name: str | None = None

    def __str__(self) -> str:
        if self.kind is TypeKind.CUSTOM:
            return str(self.custom_name)
        if self.kind is TypeKind.NUMERIC and self.precision is not None:
            if self.scale is not None:
                return f"NUMERIC({self.precision}, {self.scale})"
            return f"NUMERIC({self.precision})"
        if self.length is not None:
            return f"{self.kind.value}({self.length})"
        return self.kind.value


@dataclasses.dataclass(frozen=True)
class VarExpression:
    name: str


@dataclasses.dataclass(frozen=True)
class TextExpression:
    value: str


@dataclasses.dataclass(frozen=True)
class CallExpression:
    call: str


Expression = Union[VarExpression, TextExpression, CallExpression]


@dataclasses.dataclass(frozen=True)
class Column:
    name: str
    column_type: ColumnType
    not_null: bool = False
    default: Expression | None = None
    primary_key: bool = False


@dataclasses.dataclass(frozen=True)
class CreateTable:
    name: str
    columns: tuple[Column, ...]


@dataclasses.dataclass(frozen=True)
class CreateEnumType:
    name: str
    values: tuple[str, ...]


@dataclasses.dataclass(frozen=True)
class ForeignKeyConstraint:
    column_name: str
    reference_table: str
    reference_column: str = "id"


@dataclasses.dataclass(frozen=True)
class AddConstraint:
    table_name: str
    constraint: ForeignKeyConstraint


Statement = Union[CreateTable, CreateEnumType, AddConstraint]


@dataclasses.dataclass(frozen=True)
class Schema:
    """Ordered, immutable statement list. Lookups only; every analysis is recomputed from it."""

    statements: tuple[Statement, ...]

    def tables(self) -> list[CreateTable]:
        return [s for s in self.statements if isinstance(s, CreateTable)]

    def enums(self) -> list[CreateEnumType]:
        return [s for s in self.statements if isinstance(s, CreateEnumType)]

    def constraints(self) -> list[AddConstraint]:
        return [s for s in self.statements if isinstance(s, AddConstraint)]

    def find_table(self, name: str) -> CreateTable | None:
        return next((t for t in self.tables() if t.name == name), None)

    def find_statement(self, name: str) -> CreateTable | CreateEnumType | None:
        return next(
            (s for s in self.statements if isinstance(s, (CreateTable, CreateEnumType)) and s.name == name),
            None,
        )


SIMPLE_TYPES: dict[str, TypeKind] = {
    "INT": TypeKind.INT,
    "INTEGER": TypeKind.INT,
    "INT4": TypeKind.INT,
    "BIGINT": TypeKind.BIGINT,
    "INT8": TypeKind.BIGINT,
    "TEXT": TypeKind.TEXT,
    "BOOLEAN": TypeKind.BOOLEAN,
    "BOOL": TypeKind.BOOLEAN,
    "TIMESTAMP WITH TIME ZONE": TypeKind.TIMESTAMP_WITH_TIMEZONE,
    "TIMESTAMPTZ": TypeKind.TIMESTAMP_WITH_TIMEZONE,
    "TIMESTAMP": TypeKind.TIMESTAMP,
    "TIMESTAMP WITHOUT TIME ZONE": TypeKind.TIMESTAMP,
    "UUID": TypeKind.UUID,
    "REAL": TypeKind.REAL,
    "FLOAT4": TypeKind.REAL,
    "DOUBLE PRECISION": TypeKind.DOUBLE,
    "FLOAT8": TypeKind.DOUBLE,
    "DATE": TypeKind.DATE,
    "TIME": TypeKind.TIME,
    "BYTEA": TypeKind.BINARY,
    "SERIAL": TypeKind.SERIAL,
    "BIGSERIAL": TypeKind.BIGSERIAL,
}


def parse_column_type(raw: Any) -> ColumnType:
    text = " ".join(str(raw).split())
    upper = text.upper()

    if upper in SIMPLE_TYPES:
        return ColumnType(kind=SIMPLE_TYPES[upper])

    m = re.fullmatch(r"(?:VARCHAR|CHARACTER VARYING)\s*(?:\(\s*(\d+)\s*\))?", upper)
    if m:
        return ColumnType(kind=TypeKind.VARYING, length=int(m.group(1)) if m.group(1) else None)

    m = re.fullmatch(r"(?:CHAR|CHARACTER)\s*(?:\(\s*(\d+)\s*\))?", upper)
    if m:
        return ColumnType(kind=TypeKind.CHARACTER, length=int(m.group(1)) if m.group(1) else None)

    m = re.fullmatch(r"(?:NUMERIC|DECIMAL)\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?", upper)
    if m:
        return ColumnType(
            kind=TypeKind.NUMERIC,
            precision=int(m.group(1)) if m.group(1) else None,
            scale=int(m.group(2)) if m.group(2) else None,
        )

    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", text):
        return ColumnType(kind=TypeKind.CUSTOM, custom_name=text)

    raise SchemaParseError(f"Unsupported column type: {raw!r}")


def parse_default_expression(raw: Any) -> Expression:
    """YAML ``null`` counts as the SQL ``NULL`` variable; absence of the key means no default."""
    if raw is None:
        return VarExpression("NULL")
    if isinstance(raw, bool):
        return VarExpression("true" if raw else "false")
    if isinstance(raw, dict):
        if len(raw) != 1:
            raise SchemaParseError(f"Default expression needs exactly one of var/text/call: {raw!r}")
        (kind, value), = raw.items()
        if kind == "var":
            return VarExpression("NULL" if value is None else str(value))
        if kind == "text":
            return TextExpression("" if value is None else str(value))
        if kind == "call":
            return CallExpression(str(value))
        raise SchemaParseError(f"Unknown default expression kind {kind!r}")

    text = str(raw).strip()
    if len(text) >= 2 and text.startswith("'") and text.endswith("'"):
        return TextExpression(text[1:-1].replace("''", "'"))
    if re.fullmatch(r"[A-Za-z_][\w.]*\s*\(.*\)", text, flags=re.S):
        return CallExpression(text)
    return VarExpression(text)


def require(body: dict, key: str, where: str) -> Any:
    if key not in body or body[key] is None:
        raise SchemaParseError(f"{where}: missing required key {key!r}")
    return body[key]


def parse_column(raw: Any, where: str) -> Column:
    if not isinstance(raw, dict):
        raise SchemaParseError(f"{where}: column must be a mapping, got {raw!r}")
    name = str(require(raw, "name", where))
    primary_key = bool(raw.get("primary_key", False))
    return Column(
        name=name,
        column_type=parse_column_type(require(raw, "type", f"{where} column {name}")),
        not_null=primary_key or bool(raw.get("not_null", False)),
        default=parse_default_expression(raw["default"]) if "default" in raw else None,
        primary_key=primary_key,
    )


def parse_create_table(body: dict, where: str) -> CreateTable:
    name = str(require(body, "name", where))
    columns = require(body, "columns", f"{where} ({name})")
    if not isinstance(columns, list):
        raise SchemaParseError(f"{where} ({name}): columns must be a list")
    return CreateTable(name=name, columns=tuple(parse_column(c, f"{where} ({name})") for c in columns))


def parse_create_enum(body: dict, where: str) -> CreateEnumType:
    name = str(require(body, "name", where))
    values = require(body, "values", f"{where} ({name})")
    if not isinstance(values, list) or not values:
        raise SchemaParseError(f"{where} ({name}): enum needs a non-empty list of values")
    labels = [str(v) for v in values]
    duplicates = sorted({v for v in labels if labels.count(v) > 1})
    if duplicates:
        raise SchemaParseError(f"{where} ({name}): duplicate enum values {duplicates}")
    return CreateEnumType(name=name, values=tuple(labels))


def parse_add_constraint(body: dict, where: str) -> AddConstraint:
    table_name = str(require(body, "table", where))
    fk = require(body, "foreign_key", f"{where} ({table_name})")
    if not isinstance(fk, dict):
        raise SchemaParseError(f"{where} ({table_name}): foreign_key must be a mapping")
    fk_where = f"{where} ({table_name}) foreign_key"
    return AddConstraint(
        table_name=table_name,
        constraint=ForeignKeyConstraint(
            column_name=str(require(fk, "column", fk_where)),
            reference_table=str(require(fk, "references", fk_where)),
            reference_column=str(fk.get("referenced_column") or "id"),
        ),
    )


STATEMENT_PARSERS = {
    "create_table": parse_create_table,
    "create_enum": parse_create_enum,
    "add_constraint": parse_add_constraint,
}


def parse_statements(document: Any) -> list[Statement]:
    if not isinstance(document, dict) or not isinstance(document.get("statements"), list):
        raise SchemaParseError("Schema document needs a top-level 'statements' list")

    statements: list[Statement] = []
    for idx, item in enumerate(document["statements"], 1):
        where = f"statement #{idx}"
        if not isinstance(item, dict) or len(item) != 1:
            raise SchemaParseError(f"{where}: expected a single-key mapping, got {item!r}")
        (kind, body), = item.items()
        parser = STATEMENT_PARSERS.get(kind)
        if parser is None:
            raise SchemaParseError(f"{where}: unknown statement {kind!r}")
        if not isinstance(body, dict):
            raise SchemaParseError(f"{where}: {kind} body must be a mapping")
        statements.append(parser(body, f"{where} {kind}"))
    return statements


def schema_from_statements(statements: Iterable[Statement]) -> Schema:
    return Schema(statements=tuple(statements))


def load_schema(path: Path) -> Schema:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SchemaParseError(f"{path}: {exc}") from exc
    return schema_from_statements(parse_statements(document))
