#!/usr/bin/env python3
"""Compile a declarative schema into a typed Python data-access module."""

from __future__ import annotations

import argparse
import dataclasses
import difflib
import json
import keyword
import re
import sys
from pathlib import Path
from typing import Iterable

import inflection

from schema_model import (
    AddConstraint,
    Column,
    CreateEnumType,
    CreateTable,
    ForeignKeyConstraint,
    Schema,
    SchemaParseError,
    Statement,
    TextExpression,
    TypeKind,
    VarExpression,
    load_schema,
    schema_from_statements,
)


class SchemaCompileError(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class CompilerOptions:
    # Setters are noisy and add nothing to the schema designer preview.
    compile_setters: bool


FULL_COMPILE_OPTIONS = CompilerOptions(compile_setters=True)
PREVIEW_COMPILE_OPTIONS = CompilerOptions(compile_setters=False)

HEADER = '''# This file is auto generated and will be overwritten regularly. Edit the schema source to customize the types.
from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import uuid
from typing import Any, Generic, Literal, Optional, Sequence, TypeVar

import model_support
from model_support import (
    ConversionFailed,
    Id,
    MetaBag,
    ModelContext,
    QueryBuilder,
    UnexpectedNull,
    default_value,
    enum_param_reader,
    field_with_default,
    field_with_update,
    just,
    maybe_id,
)'''

PYTHON_TYPES: dict[TypeKind, str] = {
    TypeKind.INT: "int",
    TypeKind.BIGINT: "int",
    TypeKind.TEXT: "str",
    TypeKind.BOOLEAN: "bool",
    TypeKind.TIMESTAMP_WITH_TIMEZONE: "datetime.datetime",
    TypeKind.TIMESTAMP: "datetime.datetime",
    TypeKind.UUID: "uuid.UUID",
    TypeKind.REAL: "float",
    TypeKind.DOUBLE: "float",
    TypeKind.DATE: "datetime.date",
    TypeKind.TIME: "datetime.time",
    TypeKind.NUMERIC: "decimal.Decimal",
    TypeKind.VARYING: "str",
    TypeKind.CHARACTER: "str",
    TypeKind.BINARY: "bytes",
    TypeKind.SERIAL: "int",
    TypeKind.BIGSERIAL: "int",
}

TEXT_KINDS = {TypeKind.TEXT, TypeKind.VARYING, TypeKind.CHARACTER}

COLUMN_FIELD = "column"
RELATION_FIELD = "relation"
META_FIELD = "meta"
META_FIELD_NAME = "meta"

GENERATED_METHODS = {"new_record", "from_row", "create", "create_many", "update_record", "input_value"}

IMPORTED_NAMES = {
    "Any",
    "ConversionFailed",
    "Generic",
    "Id",
    "Literal",
    "MetaBag",
    "ModelContext",
    "Optional",
    "QueryBuilder",
    "Sequence",
    "TypeVar",
    "UnexpectedNull",
}


def model_name(table_name: str) -> str:
    return inflection.camelize(inflection.singularize(table_name))


def field_name(column_name: str) -> str:
    name = column_name + "_" if keyword.iskeyword(column_name) else column_name
    if not name.isidentifier():
        raise SchemaCompileError(f"Cannot derive a field name from {column_name!r}")
    return name


def type_var_name(model: str, field: str) -> str:
    return f"{model}{inflection.camelize(field)}T"


def strip_id_suffix(name: str) -> str:
    return name[: -len("_id")] if name.endswith("_id") else name


def string_literal(value: str) -> str:
    # ensure_ascii would split astral characters into surrogate escapes
    return json.dumps(value, ensure_ascii=False)


def id_annotation(table_name: str) -> str:
    return f"Id[Literal[{string_literal(table_name)}]]"


def comma_sep(items: Iterable[str]) -> str:
    return ", ".join(items)


def indent(code: str) -> str:
    """Indent a block by four spaces, leaving empty lines empty.

    Splits on ``\\n`` only: ``str.splitlines`` would also break on characters such as U+2028
    inside emitted string literals.
    """
    return "\n".join(f"    {line}" if line.strip() else line for line in code.split("\n"))


def render_tuple(values: list[str]) -> str:
    return "(\n" + "".join(f"    {value},\n" for value in values) + ")"


def columns_referencing_table(schema: Schema, table_name: str) -> list[tuple[str, str]]:
    """Every (source table, source column) whose foreign key targets ``table_name``, in schema order.

    Given ``users`` and ``posts`` with ``posts.user_id -> users``:

    >>> columns_referencing_table(schema, "users")
    [('posts', 'user_id')]
    """
    return [
        (statement.table_name, statement.constraint.column_name)
        for statement in schema.statements
        if isinstance(statement, AddConstraint) and statement.constraint.reference_table == table_name
    ]


def find_foreign_key_constraint(schema: Schema, table: CreateTable, column: Column) -> ForeignKeyConstraint | None:
    for statement in schema.statements:
        if (
            isinstance(statement, AddConstraint)
            and statement.table_name == table.name
            and statement.constraint.column_name == column.name
        ):
            return statement.constraint
    return None


@dataclasses.dataclass(frozen=True)
class PrimaryKeyType:
    table_name: str
    column: Column
    value_type: str

    @property
    def annotation(self) -> str:
        return id_annotation(self.table_name)


PRIMARY_KEY_VALUE_TYPES: dict[TypeKind, str] = {
    TypeKind.UUID: "uuid.UUID",
    TypeKind.SERIAL: "int",
    TypeKind.BIGSERIAL: "int",
}


def primary_key_type(table: CreateTable) -> PrimaryKeyType:
    pk_columns = [c for c in table.columns if c.primary_key]
    if len(pk_columns) != 1:
        raise SchemaCompileError(
            f"Table {table.name} needs exactly one primary key column, found {len(pk_columns)}"
        )
    column = pk_columns[0]
    if column.column_type.kind not in PRIMARY_KEY_VALUE_TYPES:
        raise SchemaCompileError(
            f"Unexpected primary key storage type {column.column_type} for {table.name}.{column.name}"
        )
    value_type = PRIMARY_KEY_VALUE_TYPES[column.column_type.kind]
    return PrimaryKeyType(table_name=table.name, column=column, value_type=value_type)


@dataclasses.dataclass(frozen=True)
class EntityField:
    name: str
    annotation: str
    kind: str
    column: Column | None = None
    type_parameter: str | None = None
    # belongs-to: the referenced table; relation: the referencing table
    reference_table: str | None = None
    reference_column: str | None = None


@dataclasses.dataclass(frozen=True)
class EntityShape:
    table: CreateTable
    model_name: str
    primary_key: PrimaryKeyType
    fields: tuple[EntityField, ...]

    @property
    def column_fields(self) -> list[EntityField]:
        return [f for f in self.fields if f.kind == COLUMN_FIELD]

    @property
    def relation_fields(self) -> list[EntityField]:
        return [f for f in self.fields if f.kind == RELATION_FIELD]

    @property
    def type_arguments(self) -> list[str]:
        """Belongs-to field names, then relation field names."""
        return [f.name for f in self.fields if f.type_parameter]

    @property
    def type_parameters(self) -> list[str]:
        return [f.type_parameter for f in self.fields if f.type_parameter]

    @property
    def generic_type(self) -> str:
        if not self.type_parameters:
            return self.model_name
        return f"{self.model_name}[{comma_sep(self.type_parameters)}]"

    @property
    def raw_alias(self) -> str:
        return f"{self.model_name}Raw"


def python_type(column: Column) -> str:
    if column.column_type.kind is TypeKind.CUSTOM:
        return model_name(str(column.column_type.custom_name))
    return PYTHON_TYPES[column.column_type.kind]


def optional(annotation: str, column: Column) -> str:
    return annotation if column.not_null else f"Optional[{annotation}]"


def relation_field_names(references: list[tuple[str, str]]) -> list[str]:
    # Two foreign keys from ``referrals`` (user_id, referred_user_id) would both
    # become ``referrals``; qualify every colliding entry with its column instead.
    defaults = [inflection.pluralize(source_table) for source_table, _ in references]
    names: list[str] = []
    for (source_table, source_column), default in zip(references, defaults):
        if defaults.count(default) > 1:
            names.append(inflection.pluralize(f"{source_table}_{strip_id_suffix(source_column)}"))
        else:
            names.append(default)
    return [field_name(name) for name in names]


def check_field_names(table: CreateTable, fields: list[EntityField]) -> None:
    seen: set[str] = set()
    for f in fields:
        if f.name in seen:
            raise SchemaCompileError(
                f"Table {table.name}: field {f.name!r} is generated more than once "
                "(columns, relation fields and the meta field need distinct names)"
            )
        seen.add(f.name)

    reserved = GENERATED_METHODS | {f"set_{name}" for name in seen}
    for f in fields:
        if f.name in reserved:
            raise SchemaCompileError(f"Table {table.name}: field {f.name!r} collides with a generated method")


def entity_shape(schema: Schema, table: CreateTable) -> EntityShape:
    name = model_name(table.name)
    primary_key = primary_key_type(table)
    fields: list[EntityField] = []

    for column in table.columns:
        fname = field_name(column.name)
        if column.primary_key:
            fields.append(EntityField(fname, primary_key.annotation, COLUMN_FIELD, column=column))
            continue
        constraint = find_foreign_key_constraint(schema, table, column)
        if constraint is not None:
            type_var = type_var_name(name, fname)
            fields.append(
                EntityField(
                    fname,
                    optional(type_var, column),
                    COLUMN_FIELD,
                    column=column,
                    type_parameter=type_var,
                    reference_table=constraint.reference_table,
                    reference_column=constraint.reference_column,
                )
            )
        else:
            fields.append(EntityField(fname, optional(python_type(column), column), COLUMN_FIELD, column=column))

    references = columns_referencing_table(schema, table.name)
    for (source_table, source_column), relation_name in zip(references, relation_field_names(references)):
        type_var = type_var_name(name, relation_name)
        fields.append(
            EntityField(
                relation_name,
                type_var,
                RELATION_FIELD,
                type_parameter=type_var,
                reference_table=source_table,
                reference_column=source_column,
            )
        )

    fields.append(EntityField(META_FIELD_NAME, "MetaBag", META_FIELD))
    check_field_names(table, fields)
    return EntityShape(table=table, model_name=name, primary_key=primary_key, fields=tuple(fields))


def raw_type_argument(field: EntityField) -> str:
    if field.kind == RELATION_FIELD:
        return f"QueryBuilder[{string_literal(model_name(str(field.reference_table)))}]"
    return id_annotation(str(field.reference_table))


def is_null_expression(expression: object) -> bool:
    return isinstance(expression, VarExpression) and expression.name.upper() == "NULL"


def wrap_null(column: Column, value: str) -> str:
    return value if column.not_null else f"just({value})"


def compile_default_value(column: Column, generic_default: str) -> str:
    """Fresh-record value of a column; ``generic_default`` defers to the target type's default."""
    expression = column.default
    if expression is None:
        return generic_default
    if is_null_expression(expression):
        return "None"

    kind = column.column_type.kind
    if kind in TEXT_KINDS:
        if not isinstance(expression, TextExpression):
            raise SchemaCompileError(
                f"Column {column.name}: {column.column_type} column needs a text literal as default value. "
                f"Got: {expression!r}"
            )
        return wrap_null(column, string_literal(expression.value))
    if kind is TypeKind.BOOLEAN:
        if not isinstance(expression, VarExpression) or expression.name.lower() not in ("true", "false"):
            raise SchemaCompileError(
                f"Column {column.name}: BOOLEAN column needs true or false as default value. Got: {expression!r}"
            )
        return wrap_null(column, "True" if expression.name.lower() == "true" else "False")
    return generic_default


def has_explicit_or_implicit_default(column: Column) -> bool:
    return column.default is not None or column.column_type.kind in (TypeKind.SERIAL, TypeKind.BIGSERIAL)


def generic_default_value(shape: EntityShape, field: EntityField) -> str:
    column = field.column
    assert column is not None
    if column.primary_key:
        return f"Id({string_literal(shape.table.name)}, default_value({shape.primary_key.value_type}))"
    if not column.not_null:
        return "None"
    if field.type_parameter:
        return f"Id({string_literal(str(field.reference_table))}, default_value({python_type(column)}))"
    return f"default_value({python_type(column)})"


def fresh_value(shape: EntityShape, field: EntityField) -> str:
    if field.kind == COLUMN_FIELD:
        assert field.column is not None
        return compile_default_value(field.column, generic_default_value(shape, field))
    if field.kind == RELATION_FIELD:
        return f"QueryBuilder({model_name(str(field.reference_table))})"
    return "MetaBag()"


def compile_new_record(shape: EntityShape) -> str:
    values = [fresh_value(shape, f) for f in shape.fields]
    return (
        "@classmethod\n"
        f"def new_record(cls) -> {shape.raw_alias}:\n"
        + indent("return cls" + render_tuple(values) + "\n")
    )


def create_binding(field: EntityField, model: str) -> str:
    assert field.column is not None
    if has_explicit_or_implicit_default(field.column):
        return f"field_with_default({string_literal(field.name)}, {model})"
    return f"{model}.{field.name}"


def update_binding(field: EntityField, model: str) -> str:
    return f"field_with_update({string_literal(field.name)}, {model})"


def insert_prefix(shape: EntityShape) -> str:
    column_names = comma_sep(str(f.column.name) for f in shape.column_fields if f.column)
    return f"INSERT INTO {shape.table.name} ({column_names}) VALUES "


def value_placeholders(shape: EntityShape) -> str:
    return "(" + comma_sep("?" for _ in shape.column_fields) + ")"


def compile_create(shape: EntityShape) -> str:
    sql = insert_prefix(shape) + value_placeholders(shape) + " RETURNING *"
    bindings = [create_binding(f, "self") for f in shape.column_fields]
    query = "rows = model_context.query(\n" + indent(string_literal(sql) + ",\n" + render_tuple(bindings) + ",\n") + ")\n"
    return (
        f"def create(self, model_context: ModelContext) -> {shape.raw_alias}:\n"
        + indent(query + "return self.from_row(rows[0])\n")
    )


def compile_create_many(shape: EntityShape) -> str:
    signature = (
        "@classmethod\n"
        f"def create_many(cls, model_context: ModelContext, models: Sequence[{shape.model_name}]) "
        f"-> list[{shape.raw_alias}]:\n"
    )
    bindings = [create_binding(f, "model") for f in shape.column_fields]
    body = (
        "if not models:\n"
        "    return []\n"
        f"values = \", \".join({string_literal(value_placeholders(shape))} for _ in models)\n"
        "params: list[Any] = []\n"
        "for model in models:\n"
        + indent("params.extend(\n" + indent(render_tuple(bindings) + "\n") + ")\n")
        + "rows = model_context.query(\n"
        + indent(f"{string_literal(insert_prefix(shape))} + values + \" RETURNING *\",\nparams,\n")
        + ")\n"
        "return [cls.from_row(row) for row in rows]\n"
    )
    return signature + indent(body)


def compile_update(shape: EntityShape) -> str:
    columns = shape.column_fields
    pk_field = next(f for f in columns if f.column is shape.primary_key.column)
    updates = comma_sep(f"{f.column.name} = ?" for f in columns if f.column)
    sql = f"UPDATE {shape.table.name} SET {updates} WHERE {shape.primary_key.column.name} = ? RETURNING *"
    bindings = [update_binding(f, "self") for f in columns] + [f"self.{pk_field.name}"]
    query = "rows = model_context.query(\n" + indent(string_literal(sql) + ",\n" + render_tuple(bindings) + ",\n") + ")\n"
    return (
        f"def update_record(self, model_context: ModelContext) -> {shape.raw_alias}:\n"
        + indent(query + "return self.from_row(rows[0])\n")
    )


def compile_relation_scope(schema: Schema, field: EntityField) -> str:
    source_table = schema.find_table(str(field.reference_table))
    if source_table is None:
        raise SchemaCompileError(
            f"Could not find table {field.reference_table} referenced by a foreign key constraint"
        )
    source_column = next((c for c in source_table.columns if c.name == field.reference_column), None)
    if source_column is None:
        raise SchemaCompileError(
            f"Could not find {source_table.name}.{field.reference_column} referenced by a foreign key constraint. "
            "Make sure that there is no typo in the foreign key constraint"
        )
    # The comparison value has to match the optionality of the foreign key column.
    value = "primary_key" if source_column.not_null else "just(primary_key)"
    return (
        f"QueryBuilder({model_name(source_table.name)})"
        f".filter_where({string_literal(source_column.name)}, {value})"
    )


def decode_column(field: EntityField, index: int) -> str:
    column = field.column
    assert column is not None
    raw = f"row[{index}]"
    if column.primary_key:
        return "primary_key"
    if field.type_parameter:
        table = string_literal(str(field.reference_table))
        return f"Id({table}, {raw})" if column.not_null else f"maybe_id({table}, {raw})"
    if column.column_type.kind is TypeKind.CUSTOM:
        decoded = f"{python_type(column)}.from_field({raw})"
        return decoded if column.not_null else f"None if {raw} is None else {decoded}"
    return raw


def compile_from_row(schema: Schema, shape: EntityShape) -> str:
    pk_index = shape.table.columns.index(shape.primary_key.column)
    values: list[str] = []
    column_index = 0
    for f in shape.fields:
        if f.kind == COLUMN_FIELD:
            values.append(decode_column(f, column_index))
            column_index += 1
        elif f.kind == RELATION_FIELD:
            values.append(compile_relation_scope(schema, f))
        else:
            values.append("MetaBag()")
    body = (
        f"primary_key = Id({string_literal(shape.table.name)}, row[{pk_index}])\n"
        + "return cls" + render_tuple(values) + "\n"
    )
    return (
        "@classmethod\n"
        f"def from_row(cls, row: Sequence[Any]) -> {shape.raw_alias}:\n"
        + indent(body)
    )


def enum_member_name(value: str) -> str:
    name = re.sub(r"[^0-9A-Za-z]+", "_", value).strip("_").upper()
    if not name:
        raise SchemaCompileError(f"Cannot derive an enum variant name from {value!r}")
    if name[0].isdigit():
        name = "V_" + name
    return name


def compile_enum(statement: CreateEnumType) -> str:
    if not statement.values:
        raise SchemaCompileError(f"Enum {statement.name} has no values")
    name = model_name(statement.name)
    members = [enum_member_name(v) for v in statement.values]
    duplicates = sorted({m for m in members if members.count(m) > 1})
    if duplicates:
        raise SchemaCompileError(f"Enum {statement.name}: values map to the same variant names {duplicates}")

    lines: list[str] = [f"class {name}(enum.Enum):"]
    for member, value in zip(members, statement.values):
        lines.append(f"    {member} = {string_literal(value)}")
    lines.append("")

    decode = [
        "@classmethod",
        f"def from_field(cls, value: Optional[str]) -> {name}:",
        "    if value is None:",
        '        raise UnexpectedNull("Unexpected null for enum value")',
    ]
    for member, value in zip(members, statement.values):
        decode.append(f"    if value == {string_literal(value)}:")
        decode.append(f"        return cls.{member}")
    decode.append('    raise ConversionFailed(f"Unexpected value for enum value: {value!r}")')

    methods = [
        "\n".join(decode),
        "def to_field(self) -> str:\n    return self.value",
        f"@classmethod\ndef default(cls) -> {name}:\n    return cls.{members[0]}",
        "def input_value(self) -> str:\n    return self.value",
        f"@classmethod\ndef read_parameter(cls, raw: str | bytes) -> {name}:\n    return enum_param_reader(cls, raw)",
    ]
    return "\n".join(lines) + "\n" + "\n\n".join(indent(m + "\n").rstrip("\n") for m in methods) + "\n"


def compile_setter(shape: EntityShape, target: EntityField) -> str:
    values: list[str] = []
    for f in shape.fields:
        if f.name == target.name:
            values.append("new_value")
        elif f.kind == META_FIELD:
            values.append(f"self.meta.touch({string_literal(target.name)})")
        else:
            values.append(f"self.{f.name}")
    return (
        f"def set_{target.name}(self, new_value: {target.annotation}) -> {shape.generic_type}:\n"
        + indent(f"return {shape.model_name}" + render_tuple(values) + "\n")
    )


def compile_setters(shape: EntityShape) -> list[str]:
    return [compile_setter(shape, f) for f in shape.fields]


def compile_data(shape: EntityShape) -> str:
    generic = f"(Generic[{comma_sep(shape.type_parameters)}])" if shape.type_parameters else ""
    lines: list[str] = ["@dataclasses.dataclass(frozen=True)", f"class {shape.model_name}{generic}:"]
    for f in shape.fields:
        lines.append(f"    {f.name}: {f.annotation}")
    lines.append("")
    lines.append(f"    __table_name__ = {string_literal(shape.table.name)}")
    lines.append(f"    __model_name__ = {string_literal(shape.model_name)}")
    lines.append(f"    __primary_key__ = {string_literal(shape.primary_key.column.name)}")
    lines.append(f"    __primary_key_type__ = {shape.primary_key.value_type}")
    return "\n".join(lines)


def compile_type_aliases(shape: EntityShape) -> str:
    raw_args = [raw_type_argument(f) for f in shape.fields if f.type_parameter]
    raw = f"{shape.model_name}[{comma_sep(raw_args)}]" if raw_args else shape.model_name
    names = comma_sep(string_literal(f.name) for f in shape.fields)
    return f"{shape.raw_alias} = {raw}\n{shape.model_name}Field = Literal[{names}]"


def compile_input_value(shape: EntityShape) -> str:
    # A record stands for its primary key when used as untyped form input.
    pk_field = field_name(shape.primary_key.column.name)
    return f"def input_value(self) -> str:\n    return str(self.{pk_field})\n"


def compile_table(schema: Schema, options: CompilerOptions, table: CreateTable) -> str:
    shape = entity_shape(schema, table)
    methods = [
        compile_new_record(shape),
        compile_from_row(schema, shape),
        compile_create(shape),
        compile_create_many(shape),
        compile_update(shape),
        compile_input_value(shape),
    ]
    if options.compile_setters:
        methods.extend(compile_setters(shape))

    parts: list[str] = []
    if shape.type_parameters:
        parts.append("\n".join(f"{t} = TypeVar({string_literal(t)})" for t in shape.type_parameters))
    body = compile_data(shape) + "\n\n" + "\n".join(indent(m) for m in methods).rstrip("\n")
    parts.append(body)
    parts.append(compile_type_aliases(shape))
    return "\n\n\n".join(parts)


def compile_statement(schema: Schema, options: CompilerOptions, statement: Statement) -> str:
    if isinstance(statement, (CreateTable, CreateEnumType)) and model_name(statement.name) in IMPORTED_NAMES:
        raise SchemaCompileError(
            f"{statement.name}: model name {model_name(statement.name)} shadows a name the generated module imports"
        )
    if isinstance(statement, CreateTable):
        return compile_table(schema, options, statement)
    if isinstance(statement, CreateEnumType):
        return compile_enum(statement)
    return ""


def compile_models_by_table(schema: Schema) -> str:
    lines: list[str] = ["MODELS_BY_TABLE: dict[str, Any] = {"]
    for table in schema.tables():
        lines.append(f"    {string_literal(table.name)}: {model_name(table.name)},")
    lines.append("}")
    lines.append("")
    lines.append("")
    lines.append("def fetch_related(model: Any, field: str, model_context: ModelContext) -> Any:")
    lines.append("    return model_support.fetch_related(model, field, model_context, MODELS_BY_TABLE)")
    return "\n".join(lines)


def generated_names(statement: CreateTable | CreateEnumType) -> list[str]:
    name = model_name(statement.name)
    if isinstance(statement, CreateTable):
        return [name, f"{name}Raw", f"{name}Field"]
    return [name]


def check_generated_names(schema: Schema) -> None:
    """Fail when two tables or enums would define the same module-level name."""
    owners: dict[str, str] = {}
    for statement in schema.statements:
        if not isinstance(statement, (CreateTable, CreateEnumType)):
            continue
        for name in generated_names(statement):
            if name in owners:
                raise SchemaCompileError(f"{owners[name]} and {statement.name} both generate {name}")
            owners[name] = statement.name


def compile_types(options: CompilerOptions, schema: Schema) -> str:
    check_generated_names(schema)
    parts: list[str] = [HEADER]
    for statement in schema.statements:
        compiled = compile_statement(schema, options, statement)
        if compiled:
            parts.append(compiled.strip("\n"))
    parts.append(compile_models_by_table(schema))
    return "\n\n\n".join(parts) + "\n"


def compile_statement_preview(statements: Iterable[Statement], statement: Statement) -> str:
    return compile_statement(schema_from_statements(statements), PREVIEW_COMPILE_OPTIONS, statement)


def write_if_different(path: Path, content: str) -> bool:
    existing = path.read_text(encoding="utf-8") if path.exists() else None
    if existing == content:
        return False
    print(f"Updating {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


def check_equal(path: Path, generated: str) -> bool:
    if not path.exists():
        print(f"[check] missing file: {path}", file=sys.stderr)
        return False

    existing = path.read_text(encoding="utf-8")
    if existing == generated:
        return True

    print(f"[check] drift detected: {path}", file=sys.stderr)
    diff = difflib.unified_diff(
        existing.splitlines(),
        generated.splitlines(),
        fromfile=str(path),
        tofile=f"generated:{path}",
        lineterm="",
    )
    for idx, line in enumerate(diff):
        if idx > 200:
            print("... (diff truncated)", file=sys.stderr)
            break
        print(line, file=sys.stderr)
    return False


def compile_file(schema_path: Path, out_path: Path, options: CompilerOptions = FULL_COMPILE_OPTIONS) -> bool:
    """Regenerate ``out_path`` from ``schema_path``; returns whether the file was written."""
    content = compile_types(options, load_schema(schema_path))
    return write_if_different(out_path, content)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate typed model code from a declarative schema")
    parser.add_argument("--schema", default="schema.yaml", help="Input schema file")
    parser.add_argument("--out", default="build/Generated/types.py", help="Output module")
    parser.add_argument("--check", action="store_true", help="Verify the output is up-to-date without writing")
    parser.add_argument("--preview", metavar="NAME", help="Print the code for one table or enum and exit")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    schema_path = Path(args.schema)
    out_path = Path(args.out)

    try:
        schema = load_schema(schema_path)
        if args.preview:
            statement = schema.find_statement(args.preview)
            if statement is None:
                raise SchemaCompileError(f"No table or enum named {args.preview!r} in {schema_path}")
            print(compile_statement_preview(schema.statements, statement))
            return 0
        content = compile_types(FULL_COMPILE_OPTIONS, schema)
    except (OSError, SchemaParseError, SchemaCompileError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.check:
        return 0 if check_equal(out_path, content) else 1

    if not write_if_different(out_path, content):
        print(f"Up to date: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
