"""
Drizzle ORM schema emitter

One ``pgTable`` per table with camelCase keys mapped to the column names,
``pgEnum`` declarations for enum columns, inline ``references`` for every
foreign key and a ``relations`` block for both sides of each key.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Cardinality, Column, PostgresType, Relationship, Schema, Table
from ..schema.naming import singularize, to_camel_case, to_pascal_case
from .base import (
    NOT_LITERAL,
    Artifact,
    BaseEmitter,
    TargetFormat,
    foreign_keys,
    literal_default,
    register_emitter,
)
from .type_maps import DRIZZLE_TYPES, drizzle_builder, enum_type_name

_UUID_DEFAULTS = ("gen_random_uuid()", "uuid_generate_v4()")
_NOW_DEFAULTS = ("now()", "current_timestamp", "current_timestamp()")

# Helpers imported from drizzle-orm itself
_CORE_NAMES = {"relations", "sql"}
_TABLE_HELPERS = {"pgTable", "pgEnum", "primaryKey", "index", "uniqueIndex", "AnyPgColumn"}


@dataclass
class DrizzleColumn:
    key: str
    builder: str
    db_name: str
    options: Optional[str] = None
    modifiers: List[str] = field(default_factory=list)


@dataclass
class DrizzleTable:
    variable: str
    name: str
    columns: List[DrizzleColumn] = field(default_factory=list)
    extras: List[str] = field(default_factory=list)
    comment: Optional[str] = None


@dataclass
class DrizzleEnum:
    variable: str
    name: str
    values: List[str]


@dataclass
class DrizzleRelation:
    name: str
    kind: str
    target: str
    config: Optional[str] = None


@dataclass
class DrizzleRelations:
    table_variable: str
    relations: List[DrizzleRelation] = field(default_factory=list)


@dataclass
class DrizzleDocument:
    core_imports: Set[str] = field(default_factory=set)
    pg_imports: Set[str] = field(default_factory=set)
    enums: List[DrizzleEnum] = field(default_factory=list)
    tables: List[DrizzleTable] = field(default_factory=list)
    relations: List[DrizzleRelations] = field(default_factory=list)


def ts_string(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def sql_template(expression: str) -> str:
    return "sql`" + expression.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${") + "`"


class DrizzlePrinter:
    def print(self, document: DrizzleDocument) -> str:
        blocks = [self._imports(document)]
        for enum in document.enums:
            values = ", ".join(ts_string(v) for v in enum.values)
            blocks.append(f"export const {enum.variable} = pgEnum({ts_string(enum.name)}, [{values}]);")
        blocks.extend(self._table(t) for t in document.tables)
        blocks.extend(self._relations(r) for r in document.relations)
        return "\n\n".join(blocks) + "\n"

    def _imports(self, document: DrizzleDocument) -> str:
        lines = []
        if document.core_imports:
            lines.append(f"import {{ {', '.join(sorted(document.core_imports))} }} from 'drizzle-orm';")
        names = sorted(document.pg_imports, key=str.lower)
        names = [f"type {n}" if n == "AnyPgColumn" else n for n in names]
        lines.append(f"import {{ {', '.join(names)} }} from 'drizzle-orm/pg-core';")
        return "\n".join(lines)

    def _table(self, table: DrizzleTable) -> str:
        lines = []
        if table.comment:
            lines.append(f"/** {table.comment.replace('*/', '* /')} */")
        lines.append(f"export const {table.variable} = pgTable({ts_string(table.name)}, {{")
        for column in table.columns:
            args = ts_string(column.db_name)
            if column.options:
                args += f", {column.options}"
            chain = "".join(f".{m}" for m in column.modifiers)
            lines.append(f"  {column.key}: {column.builder}({args}){chain},")
        if table.extras:
            lines.append("}, (table) => [")
            lines.extend(f"  {extra}," for extra in table.extras)
            lines.append("]);")
        else:
            lines.append("});")
        return "\n".join(lines)

    def _relations(self, block: DrizzleRelations) -> str:
        helpers = sorted({r.kind for r in block.relations})
        lines = [
            f"export const {block.table_variable}Relations = "
            f"relations({block.table_variable}, ({{ {', '.join(helpers)} }}) => ({{"
        ]
        for rel in block.relations:
            config = f", {rel.config}" if rel.config else ""
            lines.append(f"  {rel.name}: {rel.kind}({rel.target}{config}),")
        lines.append("}));")
        return "\n".join(lines)


def _claim(taken: Set[str], name: str, suffix: str = "") -> str:
    candidate = name
    if candidate in taken and suffix:
        candidate = f"{name}{suffix}"
    base, n = candidate, 2
    while candidate in taken:
        candidate = f"{base}{n}"
        n += 1
    taken.add(candidate)
    return candidate


def _identifier(name: str, prefix: str) -> str:
    identifier = to_camel_case(name)
    if not identifier or identifier[0].isdigit():
        identifier = f"{prefix}{to_pascal_case(name)}"
    return identifier


def _builder_options(data_type: PostgresType, column: Column, is_element: bool = False) -> Optional[str]:
    if data_type == PostgresType.BIGINT:
        return "{ mode: 'number' }"
    if data_type == PostgresType.TIMESTAMPTZ:
        return "{ withTimezone: true }"
    if is_element:
        return None
    if data_type.requires_length:
        length = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
        return f"{{ length: {length} }}"
    if data_type.is_numeric_exact and column.precision:
        if column.scale is not None:
            return f"{{ precision: {column.precision}, scale: {column.scale} }}"
        return f"{{ precision: {column.precision} }}"
    return None


class _SchemaBuilder:
    """Builds the Drizzle document of one schema"""

    def __init__(self, schema: Schema, order: DependencyOrder, include_indexes: bool, include_comments: bool):
        self.schema = schema
        self.tables = order.sort_tables(schema.tables)
        self.keys = order.sort_relationships(foreign_keys(schema))
        self.include_indexes = include_indexes
        self.include_comments = include_comments
        self.document = DrizzleDocument(pg_imports={"pgTable"})
        self.taken: Set[str] = set(DRIZZLE_TYPES.values()) | _CORE_NAMES | _TABLE_HELPERS
        self.variables: Dict[str, str] = {}
        self.keys_by_table: Dict[str, Dict[str, str]] = {}
        self.relations: Dict[str, DrizzleRelations] = {}
        self.relation_names: Dict[str, Set[str]] = {}

    def build(self) -> DrizzleDocument:
        for table in self.tables:
            self.variables[table.name] = _claim(self.taken, _identifier(table.name, "t"), "Table")
            used: Set[str] = set()
            self.keys_by_table[table.name] = {
                column.name: _claim(used, _identifier(column.name, "c")) for column in table.columns
            }
        declared: Set[str] = set()
        for table in self.tables:
            self.document.tables.append(self._table(table, declared))
            declared.add(table.name)
        for rel in self.keys:
            self._relation(rel)
        for table in self.tables:
            block = self.relations.get(table.name)
            if block:
                self.document.relations.append(block)
        if self.document.relations:
            self.document.core_imports.add("relations")
        return self.document

    def _key(self, table_name: str, column_name: str) -> str:
        return self.keys_by_table[table_name][column_name]

    def _table(self, table: Table, declared: Set[str]) -> DrizzleTable:
        drizzle_table = DrizzleTable(
            variable=self.variables[table.name],
            name=table.name,
            comment=table.comment if self.include_comments else None,
        )
        for column in table.columns:
            key = self._key(table.name, column.name)
            drizzle_table.columns.append(self._column(table, column, key, declared))

        pk_columns = table.primary_key_columns
        if len(pk_columns) > 1:
            self.document.pg_imports.add("primaryKey")
            members = ", ".join(f"table.{self._key(table.name, c.name)}" for c in pk_columns)
            drizzle_table.extras.append(f"primaryKey({{ columns: [{members}] }})")
        if self.include_indexes:
            for index in table.indexes:
                if not all(table.has_column(c) for c in index.columns):
                    continue
                helper = "uniqueIndex" if index.unique else "index"
                self.document.pg_imports.add(helper)
                members = ", ".join(f"table.{self._key(table.name, c)}" for c in index.columns)
                drizzle_table.extras.append(f"{helper}({ts_string(index.name)}).on({members})")
        return drizzle_table

    def _column(self, table: Table, column: Column, key: str, declared: Set[str]) -> DrizzleColumn:
        builder = drizzle_builder(column, table.name)
        data_type = column.data_type
        if data_type == PostgresType.ENUM and column.enum_values:
            builder = self._enum(table, column)
        else:
            self.document.pg_imports.add(builder)

        if data_type == PostgresType.ARRAY:
            options = _builder_options(column.element_type or PostgresType.TEXT, column, is_element=True)
        elif data_type == PostgresType.ENUM:
            options = None
        else:
            options = _builder_options(data_type, column)

        modifiers: List[str] = []
        if data_type == PostgresType.ARRAY:
            modifiers.append("array()")
        if column.is_primary_key and len(table.primary_key_columns) == 1:
            modifiers.append("primaryKey()")
        elif not column.effective_nullable:
            modifiers.append("notNull()")
        if column.is_unique and not column.is_primary_key:
            modifiers.append("unique()")
        if column.has_default:
            modifiers.append(self._default(builder, column.default_expression))
        reference = self._reference(table, column, declared)
        if reference:
            modifiers.append(reference)
        return DrizzleColumn(
            key=key, builder=builder, db_name=column.name, options=options, modifiers=modifiers
        )

    def _enum(self, table: Table, column: Column) -> str:
        name = drizzle_builder(column, table.name)
        variable = _claim(self.taken, name)
        self.document.pg_imports.add("pgEnum")
        self.document.enums.append(DrizzleEnum(
            variable=variable,
            name=enum_type_name(table.name, column.name),
            values=list(column.enum_values),
        ))
        return variable

    def _default(self, builder: str, expression: str) -> str:
        lower = expression.strip().lower()
        if builder == "uuid" and lower in _UUID_DEFAULTS:
            return "defaultRandom()"
        if builder == "timestamp" and lower in _NOW_DEFAULTS:
            return "defaultNow()"
        value = literal_default(expression)
        if value is NOT_LITERAL or value is None:
            self.document.core_imports.add("sql")
            return f"default({sql_template(expression.strip())})"
        if isinstance(value, str):
            return f"default({ts_string(value)})"
        if builder == "numeric" and not isinstance(value, bool):
            # numeric columns are typed as strings
            return f"default({ts_string(str(value))})"
        return f"default({json.dumps(value)})"

    def _reference(self, table: Table, column: Column, declared: Set[str]) -> Optional[str]:
        rel = next(
            (r for r in self.keys if r.source_table == table.name and r.source_column == column.name),
            None,
        )
        if rel is None:
            return None
        target = f"{self.variables[rel.target_table]}.{self._key(rel.target_table, rel.target_column)}"
        actions = (
            f"{{ onDelete: {ts_string(rel.on_delete.value.lower())}, "
            f"onUpdate: {ts_string(rel.on_update.value.lower())} }}"
        )
        if rel.target_table in declared:
            return f"references(() => {target}, {actions})"
        # self references and cycles need an explicit column type
        self.document.pg_imports.add("AnyPgColumn")
        return f"references((): AnyPgColumn => {target}, {actions})"

    def _relations_of(self, table_name: str) -> DrizzleRelations:
        if table_name not in self.relations:
            self.relations[table_name] = DrizzleRelations(table_variable=self.variables[table_name])
            self.relation_names[table_name] = set(self.keys_by_table[table_name].values())
        return self.relations[table_name]

    def _relation(self, rel: Relationship) -> None:
        source = self.variables[rel.source_table]
        target = self.variables[rel.target_table]
        source_key = self._key(rel.source_table, rel.source_column)
        target_key = self._key(rel.target_table, rel.target_column)
        relation_name = ts_string(rel.name)

        base = rel.source_column[:-3] if rel.source_column.lower().endswith("_id") else rel.target_table
        forward = self._relations_of(rel.source_table)
        forward.relations.append(DrizzleRelation(
            name=_claim(self.relation_names[rel.source_table], _identifier(base, "r")),
            kind="one",
            target=target,
            config=(
                f"{{ fields: [{source}.{source_key}], references: [{target}.{target_key}], "
                f"relationName: {relation_name} }}"
            ),
        ))

        one_to_one = rel.cardinality == Cardinality.ONE_TO_ONE
        back_base = singularize(rel.source_table) if one_to_one else rel.source_table
        if rel.is_self_reference:
            back_base = f"{back_base}_by_{base}"
        back = self._relations_of(rel.target_table)
        back.relations.append(DrizzleRelation(
            name=_claim(self.relation_names[rel.target_table], _identifier(back_base, "r")),
            kind="one" if one_to_one else "many",
            target=source,
            config=f"{{ relationName: {relation_name} }}",
        ))


@register_emitter(TargetFormat.DRIZZLE)
class DrizzleEmitter(BaseEmitter):
    """Drizzle ORM table definitions"""

    description = "Drizzle ORM schema (TypeScript)"
    extension = ".ts"
    mime_type = "application/typescript"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        document = _SchemaBuilder(
            schema, order, self.options.include_indexes, self.options.include_comments
        ).build()
        return [self.artifact("schema.ts", DrizzlePrinter().print(document))]
